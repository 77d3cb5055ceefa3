"""Aggregations over evaluation records.

Everything here is pure: callers fetch the records and pass them in together
with the question catalog. Two families live side by side:

* session analytics, shown on the admin dashboard for one training session;
* instructor analytics, grouping sessions by instructor with monthly trends.
"""
import calendar
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Sequence

from .catalog import QuestionCatalog, RatingScale
from .schemas import Evaluation, TrainingSession

TIME_RANGES = {"month": 1, "quarter": 3, "year": 12}
SORT_KEYS = ("rating", "name", "sessions")


@dataclass
class QuestionAverage:
    question: str
    average: float
    count: int


@dataclass
class GroupAverages:
    group: str
    questions: list[QuestionAverage] = field(default_factory=list)


@dataclass
class Recommendation:
    number: int
    name: str
    phone: str
    email: str


@dataclass
class SessionAnalytics:
    total_responses: int
    rating_counts: dict[str, int]
    question_averages: list[GroupAverages]
    overall_evaluation_counts: dict[str, int]
    source_counts: dict[str, int]
    recommendations: list[Recommendation]


def _value(rating) -> str:
    return getattr(rating, "value", rating)


def rating_distribution(evaluations: Iterable[Evaluation], catalog: QuestionCatalog) -> dict[str, int]:
    counts = Counter(_value(r.rating) for e in evaluations for r in e.ratings)
    ordered = {k: counts[k] for k in catalog.rating_order if k in counts}
    ordered.update((k, v) for k, v in counts.items() if k not in ordered)
    return ordered


def question_averages(evaluations: Iterable[Evaluation], scale: RatingScale) -> list[GroupAverages]:
    """Average score per (group, question), grouped by group in first-seen order."""
    totals: dict[tuple[str, str], list[int]] = {}
    for e in evaluations:
        for r in e.ratings:
            score = scale.score(_value(r.rating))
            if score is None:
                continue
            bucket = totals.setdefault((r.group, r.question), [0, 0])
            bucket[0] += score
            bucket[1] += 1

    groups: dict[str, GroupAverages] = {}
    for (group, question), (total, count) in totals.items():
        groups.setdefault(group, GroupAverages(group)).questions.append(
            QuestionAverage(question, round(total / count, 2), count)
        )
    return list(groups.values())


def is_overall_evaluation(source: str, catalog: QuestionCatalog) -> bool:
    """The overall-evaluation answer is stored among sources; it is told apart by its label."""
    return source in catalog.overall_labels


def split_sources(evaluations: Iterable[Evaluation], catalog: QuestionCatalog):
    """Return (overall evaluation counts, referral source counts).

    Overall counts follow the catalog label order; sources are ordered by
    descending count.
    """
    overall: Counter = Counter()
    sources: Counter = Counter()
    for e in evaluations:
        for source in e.sources or ():
            if is_overall_evaluation(source, catalog):
                overall[source] += 1
            else:
                sources[source] += 1
    overall_ordered = {label: overall[label] for label in catalog.overall_labels if label in overall}
    return overall_ordered, dict(sources.most_common())


def collect_recommendations(evaluations: Iterable[Evaluation]) -> list[Recommendation]:
    filled = (s for e in evaluations for s in e.suggestions or () if s.is_filled)
    return [Recommendation(i, s.name, s.phone, s.email) for i, s in enumerate(filled, start=1)]


def summarize_session(
    evaluations: Sequence[Evaluation], catalog: QuestionCatalog
) -> Optional[SessionAnalytics]:
    if not evaluations:
        return None
    overall, sources = split_sources(evaluations, catalog)
    return SessionAnalytics(
        total_responses=len(evaluations),
        rating_counts=rating_distribution(evaluations, catalog),
        question_averages=question_averages(evaluations, catalog.session_scale),
        overall_evaluation_counts=overall,
        source_counts=sources,
        recommendations=collect_recommendations(evaluations),
    )


# ---------- instructor analytics ----------

@dataclass
class TrendBucket:
    month: str
    average: float
    count: int
    evaluations: int


@dataclass
class InstructorRating:
    name: str
    sessions: list[TrainingSession] = field(default_factory=list)
    evaluations: list[Evaluation] = field(default_factory=list)
    average: float = 0.0
    total_ratings: int = 0
    total_evaluations: int = 0
    feedback_count: int = 0
    trends: list[TrendBucket] = field(default_factory=list)

    @property
    def total_sessions(self) -> int:
        return len(self.sessions)

    def recent_trends(self, n: int = 6) -> list[TrendBucket]:
        return self.trends[-n:]

    @property
    def comments(self) -> list[Evaluation]:
        return [e for e in self.evaluations if e.additional_comments]


@dataclass
class InstructorSummary:
    total_instructors: int
    average_rating: float
    total_evaluations: int


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _score_totals(evaluations: Iterable[Evaluation], scale: RatingScale) -> tuple[int, int]:
    total = count = 0
    for e in evaluations:
        for r in e.ratings:
            score = scale.score(_value(r.rating))
            if score is not None:
                total += score
                count += 1
    return total, count


def _average(total: int, count: int) -> float:
    return round(total / count, 2) if count else 0.0


def monthly_trends(evaluations: Iterable[Evaluation], scale: RatingScale) -> list[TrendBucket]:
    months: dict[str, list[Evaluation]] = {}
    for e in evaluations:
        months.setdefault(_utc(e.submitted_at).strftime("%Y-%m"), []).append(e)
    buckets = []
    for month in sorted(months):
        total, count = _score_totals(months[month], scale)
        buckets.append(TrendBucket(month, _average(total, count), count, len(months[month])))
    return buckets


def build_instructor_ratings(
    sessions: Sequence[TrainingSession],
    evaluations_by_session: Mapping[str, Sequence[Evaluation]],
    catalog: QuestionCatalog,
) -> list[InstructorRating]:
    """Group sessions and their evaluations by instructor name.

    Sessions without an instructor are left out. Each instructor's average is
    taken over every individual rating response on the instructor scale.
    """
    scale = catalog.instructor_scale
    instructors: dict[str, InstructorRating] = {}
    for session in sessions:
        if not session.instructor_name:
            continue
        entry = instructors.setdefault(session.instructor_name, InstructorRating(session.instructor_name))
        entry.sessions.append(session)
        entry.evaluations.extend(evaluations_by_session.get(session.id, ()))

    for entry in instructors.values():
        total, count = _score_totals(entry.evaluations, scale)
        entry.average = _average(total, count)
        entry.total_ratings = count
        entry.total_evaluations = len(entry.evaluations)
        entry.feedback_count = sum(1 for e in entry.evaluations if e.additional_comments)
        entry.trends = monthly_trends(entry.evaluations, scale)
    return list(instructors.values())


def months_before(now: datetime, months: int) -> datetime:
    """Same day and time ``months`` calendar months earlier, clamped to month end.

    Mar 31 minus one month is Feb 28 (or 29), not a rollover into early March.
    """
    index = now.year * 12 + now.month - 1 - months
    year, month = divmod(index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def filter_instructors(
    instructors: Iterable[InstructorRating],
    catalog: QuestionCatalog,
    search: str = "",
    min_rating: Optional[int] = None,
    time_range: str = "all",
    now: Optional[datetime] = None,
) -> list[InstructorRating]:
    """Apply name search, then the rating band, then the time window.

    The rating band ``n`` keeps averages in [n, n + 0.99]. A time window
    recomputes the average and evaluation count from in-window evaluations and
    drops instructors with none.
    """
    result = list(instructors)
    needle = search.strip().lower()
    if needle:
        result = [i for i in result if needle in i.name.lower()]

    if min_rating is not None:
        result = [i for i in result if min_rating <= i.average <= min_rating + 0.99]

    if time_range and time_range != "all":
        if time_range not in TIME_RANGES:
            raise ValueError(f"Unknown time range: {time_range!r}")
        cutoff = months_before(_utc(now or datetime.now(timezone.utc)), TIME_RANGES[time_range])
        windowed = []
        for i in result:
            recent = [e for e in i.evaluations if _utc(e.submitted_at) >= cutoff]
            if not recent:
                continue
            total, count = _score_totals(recent, catalog.instructor_scale)
            windowed.append(replace(i, average=_average(total, count), total_ratings=count,
                                    total_evaluations=len(recent)))
        result = windowed
    return result


def sort_instructors(instructors: Iterable[InstructorRating], sort_by: str = "rating") -> list[InstructorRating]:
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_by!r}")
    if sort_by == "name":
        return sorted(instructors, key=lambda i: i.name.casefold())
    if sort_by == "sessions":
        return sorted(instructors, key=lambda i: i.total_sessions, reverse=True)
    return sorted(instructors, key=lambda i: i.average, reverse=True)


def summarize_instructors(instructors: Sequence[InstructorRating]) -> InstructorSummary:
    if not instructors:
        return InstructorSummary(0, 0.0, 0)
    return InstructorSummary(
        total_instructors=len(instructors),
        average_rating=round(sum(i.average for i in instructors) / len(instructors), 2),
        total_evaluations=sum(i.total_evaluations for i in instructors),
    )
