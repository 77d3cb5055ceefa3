from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator


class Rating(str, Enum):
    excellent = "excellent"
    very_good = "very_good"
    good = "good"
    needs_improvement = "needs_improvement"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class TrainingSessionIn(BaseModel):
    training_id: str = Field(min_length=1, max_length=60)
    batch_id: str = Field(min_length=1, max_length=60)
    training_name: str = Field(min_length=1, max_length=200)
    instructor_name: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("training_id", "batch_id", "training_name", mode="before")
    @classmethod
    def strip_required(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("instructor_name", "description", "start_date", "end_date", mode="before")
    @classmethod
    def blank_optional(cls, value):
        value = _blank_to_none(value)
        return value.strip() if isinstance(value, str) else value


class TrainingSessionUpdate(BaseModel):
    training_id: Optional[str] = Field(default=None, min_length=1, max_length=60)
    batch_id: Optional[str] = Field(default=None, min_length=1, max_length=60)
    training_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    instructor_name: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    # may be left out, but never cleared
    @field_validator("training_id", "batch_id", "training_name", mode="before")
    @classmethod
    def strip_required(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be empty")
        return value.strip() if isinstance(value, str) else value

    @field_validator("instructor_name", "description", "start_date", "end_date", mode="before")
    @classmethod
    def blank_optional(cls, value):
        return _blank_to_none(value)


class TrainingSession(TrainingSessionIn):
    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: datetime


class RatingEntry(BaseModel):
    group: str
    question: str
    rating: Rating


class OpenEndedResponse(BaseModel):
    question: str
    response: str = Field(default="", max_length=4000)


class Suggestion(BaseModel):
    name: str = Field(default="", max_length=120)
    phone: str = Field(default="", max_length=40)
    email: str = Field(default="", max_length=160)

    @field_validator("name", "phone", "email", mode="before")
    @classmethod
    def none_to_empty(cls, value):
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @property
    def is_filled(self) -> bool:
        return bool(self.name or self.phone or self.email)


class EvaluationIn(BaseModel):
    training_session_id: str = Field(min_length=1)
    instructor_name: Optional[str] = Field(default=None, max_length=120)
    course: Optional[str] = Field(default=None, max_length=200)
    course_date: Optional[date] = None
    participant_name: Optional[str] = Field(default=None, max_length=120)
    participant_email: Optional[EmailStr] = None
    ratings: list[RatingEntry] = Field(default_factory=list)
    open_ended_responses: list[OpenEndedResponse] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    additional_comments: Optional[str] = Field(default=None, max_length=4000)
    suggestions: list[Suggestion] = Field(default_factory=list)

    @field_validator(
        "instructor_name", "course", "course_date", "participant_name",
        "participant_email", "additional_comments", mode="before",
    )
    @classmethod
    def blank_optional(cls, value):
        return _blank_to_none(value)

    @field_validator("sources")
    @classmethod
    def unique_sources(cls, value: list[str]) -> list[str]:
        # a set on the form, kept ordered for storage
        return list(dict.fromkeys(s for s in value if s))


class Evaluation(EvaluationIn):
    model_config = ConfigDict(extra="ignore")

    id: str
    submitted_at: datetime
    training_session: Optional[TrainingSession] = None


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
