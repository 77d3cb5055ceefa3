"""Static question catalog for the evaluation form.

The catalog is built once at import and never mutated. Analytics functions
take it as an explicit argument so tests can swap in a smaller one.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from . import config


@dataclass(frozen=True)
class RatingScale:
    name: str
    values: Mapping[str, int]

    @property
    def maximum(self) -> int:
        return max(self.values.values())

    def score(self, rating: str) -> int | None:
        return self.values.get(rating)


@dataclass(frozen=True)
class QuestionGroup:
    name: str
    questions: tuple[str, ...]


@dataclass(frozen=True)
class QuestionCatalog:
    rating_groups: tuple[QuestionGroup, ...]
    rating_labels: Mapping[str, str]
    open_ended_questions: tuple[str, ...]
    source_options: Mapping[str, str]
    overall_labels: tuple[str, ...]
    session_scale: RatingScale
    instructor_scale: RatingScale
    extra_source_labels: Mapping[str, str] = field(default_factory=dict)

    @property
    def rating_order(self) -> tuple[str, ...]:
        return tuple(self.rating_labels)

    @property
    def question_count(self) -> int:
        return sum(len(g.questions) for g in self.rating_groups)

    def iter_questions(self):
        """Yield (group index, question index, group name, question) in form order."""
        for gi, group in enumerate(self.rating_groups):
            for qi, question in enumerate(group.questions):
                yield gi, qi, group.name, question

    def rating_label(self, value: str) -> str:
        return self.rating_labels.get(value, value)

    def source_label(self, value: str) -> str:
        if value in self.source_options:
            return self.source_options[value]
        return self.extra_source_labels.get(value, value)


FOUR_POINT = RatingScale(
    "four_point",
    MappingProxyType({"excellent": 4, "very_good": 3, "good": 2, "needs_improvement": 1}),
)
FIVE_POINT = RatingScale(
    "five_point",
    MappingProxyType({"excellent": 5, "very_good": 4, "good": 3, "needs_improvement": 2}),
)


def scales_for(profile: str) -> tuple[RatingScale, RatingScale]:
    """Return (session scale, instructor scale) for a RATING_SCALE profile."""
    if profile == "split":
        return FOUR_POINT, FIVE_POINT
    if profile == "four_point":
        return FOUR_POINT, FOUR_POINT
    if profile == "five_point":
        return FIVE_POINT, FIVE_POINT
    raise ValueError(f"Unknown rating scale profile: {profile!r}")


def build_catalog(profile: str = "split") -> QuestionCatalog:
    session_scale, instructor_scale = scales_for(profile)
    return QuestionCatalog(
        rating_groups=(
            QuestionGroup("Content Quality", (
                "Objective of the training",
                "Practice to my needs and interest",
                "Well organized",
                "Useful Visual aids and handouts",
            )),
            QuestionGroup("Presentation", (
                "Instructors Knowledge",
                "Instructors presentation style",
                "Instructor covered the material clearly",
                "Instructor responded well to questions",
                "Instructors ability to relate theory to practice",
            )),
            QuestionGroup("Training Facilities", (
                "Training room preparation",
                "Location of the Training",
                "Duration of the Training",
            )),
        ),
        rating_labels=MappingProxyType({
            "excellent": "Excellent",
            "very_good": "Very Good",
            "good": "Good",
            "needs_improvement": "Needs Improvement",
        }),
        open_ended_questions=(
            "What do you perceive to be the factor that would make training such as this more participatory?",
            "Comments/suggestions to improve this training",
            "Please suggest other follow-up training sessions which could help you day-to-day activity.",
        ),
        source_options=MappingProxyType({
            "facebook": "Facebook",
            "twitter": "Twitter",
            "linkedin": "LinkedIn",
            "instagram": "Instagram",
            "Tiktok": "Tiktok",
            "colleague": "Colleague/Friend Referral",
            "website": "Company Website",
            "other": "Other",
        }),
        overall_labels=("Excellent", "Very Good", "Good", "Fair", "Poor"),
        session_scale=session_scale,
        instructor_scale=instructor_scale,
        # older submissions used a wider list of channels
        extra_source_labels=MappingProxyType({
            "email": "Email",
            "online_ad": "Online Advertisement",
            "blog": "Blog Post/Article",
            "webinar": "Previous Webinar",
            "conference": "Conference/Event",
            "search_engine": "Search Engine",
            "youtube": "YouTube",
            "podcast": "Podcast",
            "newsletter": "Newsletter",
        }),
    )


CATALOG = build_catalog(config.RATING_SCALE)
