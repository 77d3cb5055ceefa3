"""Tests for session and instructor analytics."""
from datetime import datetime, timezone

import pytest

from training_eval import analytics
from training_eval.catalog import FIVE_POINT, FOUR_POINT, build_catalog, scales_for

from factories import full_ratings, make_evaluation, make_session

PRESENTATION = "Presentation"
KNOWLEDGE = "Instructors Knowledge"


class TestSessionAnalytics:
    def test_no_evaluations_is_absent(self, catalog):
        assert analytics.summarize_session([], catalog) is None

    def test_three_excellent_answers(self, catalog):
        evaluations = [make_evaluation(id=f"e{i}") for i in range(3)]

        result = analytics.summarize_session(evaluations, catalog)

        assert result.total_responses == 3
        assert result.rating_counts == {"excellent": 3}
        assert len(result.question_averages) == 1
        group = result.question_averages[0]
        assert group.group == PRESENTATION
        assert group.questions == [analytics.QuestionAverage(KNOWLEDGE, 4.0, 3)]

    def test_distribution_sums_to_answers_given(self, catalog):
        evaluations = [
            make_evaluation(ratings=full_ratings(catalog, "good"), id="a"),
            make_evaluation(ratings=full_ratings(catalog, "excellent"), id="b"),
            make_evaluation(ratings=full_ratings(catalog, "needs_improvement"), id="c"),
        ]

        counts = analytics.rating_distribution(evaluations, catalog)

        assert sum(counts.values()) == 3 * catalog.question_count
        assert list(counts) == ["excellent", "good", "needs_improvement"]

    def test_question_average_rounds_to_two_places(self, catalog):
        evaluations = [
            make_evaluation(ratings=((PRESENTATION, KNOWLEDGE, r),), id=str(i))
            for i, r in enumerate(["excellent", "very_good", "very_good"])
        ]

        [group] = analytics.question_averages(evaluations, catalog.session_scale)

        # (4 + 3 + 3) / 3
        assert group.questions[0].average == 3.33
        assert group.questions[0].count == 3

    def test_question_averages_stay_on_session_scale(self, catalog):
        evaluations = [
            make_evaluation(ratings=full_ratings(catalog, r), id=r)
            for r in ["excellent", "needs_improvement", "good"]
        ]

        for group in analytics.question_averages(evaluations, catalog.session_scale):
            for q in group.questions:
                assert 1.0 <= q.average <= 4.0

    def test_groups_and_questions_keep_first_seen_order(self, catalog):
        evaluations = [
            make_evaluation(ratings=(
                ("Training Facilities", "Location of the Training", "good"),
                (PRESENTATION, KNOWLEDGE, "excellent"),
                ("Training Facilities", "Duration of the Training", "good"),
            )),
        ]

        groups = analytics.question_averages(evaluations, catalog.session_scale)

        assert [g.group for g in groups] == ["Training Facilities", PRESENTATION]
        assert [q.question for q in groups[0].questions] == [
            "Location of the Training", "Duration of the Training",
        ]

    def test_same_question_text_in_two_groups_is_kept_apart(self, catalog):
        evaluations = [make_evaluation(ratings=(
            ("A", "Pace", "excellent"),
            ("B", "Pace", "needs_improvement"),
        ))]

        groups = analytics.question_averages(evaluations, catalog.session_scale)

        assert [(g.group, g.questions[0].average) for g in groups] == [("A", 4.0), ("B", 1.0)]


class TestSources:
    def test_split_is_a_partition(self, catalog):
        evaluations = [
            make_evaluation(sources=["facebook", "Excellent"], id="a"),
            make_evaluation(sources=["linkedin", "facebook", "Good"], id="b"),
            make_evaluation(sources=["Poor", "other"], id="c"),
        ]

        overall, sources = analytics.split_sources(evaluations, catalog)

        total = sum(len(e.sources) for e in evaluations)
        assert sum(overall.values()) + sum(sources.values()) == total
        assert set(overall) <= set(catalog.overall_labels)
        assert not set(sources) & set(catalog.overall_labels)

    def test_overall_follows_label_order_and_sources_follow_count(self, catalog):
        evaluations = [
            make_evaluation(sources=["Poor", "linkedin"], id="a"),
            make_evaluation(sources=["Excellent", "facebook", "linkedin"], id="b"),
            make_evaluation(sources=["Very Good", "linkedin", "facebook", "website"], id="c"),
        ]

        overall, sources = analytics.split_sources(evaluations, catalog)

        assert list(overall) == ["Excellent", "Very Good", "Poor"]
        assert list(sources.items()) == [("linkedin", 3), ("facebook", 2), ("website", 1)]

    def test_classification_is_exact_match(self, catalog):
        assert analytics.is_overall_evaluation("Very Good", catalog)
        assert not analytics.is_overall_evaluation("very good", catalog)
        assert not analytics.is_overall_evaluation("very_good", catalog)


class TestRecommendations:
    def test_skips_empty_and_numbers_by_collection(self):
        evaluations = [
            make_evaluation(suggestions=[{"name": "Abebe"}, {}], id="a"),
            make_evaluation(suggestions=[{"name": "", "phone": "", "email": ""}, {"email": "x@y.et"}], id="b"),
            make_evaluation(suggestions=[{"phone": "0911"}], id="c"),
        ]

        rows = analytics.collect_recommendations(evaluations)

        assert [(r.number, r.name, r.phone, r.email) for r in rows] == [
            (1, "Abebe", "", ""),
            (2, "", "", "x@y.et"),
            (3, "", "0911", ""),
        ]


def at(year, month, day=1):
    return datetime(year, month, day, 12, tzinfo=timezone.utc)


class TestInstructorRatings:
    def test_kaleb_across_two_sessions(self, catalog):
        sessions = [make_session("s1"), make_session("s2", training_name="Advanced")]
        by_session = {
            "s1": [
                make_evaluation(ratings=((PRESENTATION, KNOWLEDGE, "excellent"),), id="a"),
                make_evaluation(ratings=((PRESENTATION, KNOWLEDGE, "very_good"),), id="b"),
            ],
            "s2": [],
        }

        [kaleb] = analytics.build_instructor_ratings(sessions, by_session, catalog)

        assert kaleb.name == "Kaleb"
        assert kaleb.average == 4.5
        assert kaleb.total_sessions == 2
        assert kaleb.total_evaluations == 2

    def test_sessions_without_instructor_are_excluded(self, catalog):
        sessions = [make_session("s1", instructor_name=None), make_session("s2", instructor_name="Sara")]
        by_session = {"s1": [make_evaluation(session_id="s1")], "s2": []}

        result = analytics.build_instructor_ratings(sessions, by_session, catalog)

        assert [i.name for i in result] == ["Sara"]
        assert result[0].average == 0
        assert result[0].total_evaluations == 0

    def test_average_within_scale(self, catalog):
        sessions = [make_session("s1")]
        by_session = {"s1": [
            make_evaluation(ratings=full_ratings(catalog, r), id=r)
            for r in ["excellent", "good", "needs_improvement"]
        ]}

        [entry] = analytics.build_instructor_ratings(sessions, by_session, catalog)

        assert 0 <= entry.average <= 5.0
        assert entry.average == 3.33

    def test_feedback_count_and_comments(self, catalog):
        sessions = [make_session("s1")]
        by_session = {"s1": [
            make_evaluation(id="a", additional_comments="Great pace"),
            make_evaluation(id="b"),
        ]}

        [entry] = analytics.build_instructor_ratings(sessions, by_session, catalog)

        assert entry.feedback_count == 1
        assert [e.id for e in entry.comments] == ["a"]

    def test_monthly_trends_sorted_and_averaged(self, catalog):
        evaluations = [
            make_evaluation(submitted_at=at(2024, 3, 5), ratings=((PRESENTATION, KNOWLEDGE, "good"),), id="a"),
            make_evaluation(submitted_at=at(2024, 1, 9), ratings=((PRESENTATION, KNOWLEDGE, "excellent"),), id="b"),
            make_evaluation(submitted_at=at(2024, 3, 20), ratings=((PRESENTATION, KNOWLEDGE, "excellent"),), id="c"),
        ]

        trends = analytics.monthly_trends(evaluations, catalog.instructor_scale)

        assert [t.month for t in trends] == ["2024-01", "2024-03"]
        assert trends[0] == analytics.TrendBucket("2024-01", 5.0, 1, 1)
        assert trends[1] == analytics.TrendBucket("2024-03", 4.0, 2, 2)

    def test_recent_trends_keeps_last_six(self, catalog):
        evaluations = [make_evaluation(submitted_at=at(2024, m), id=str(m)) for m in range(1, 10)]
        sessions = [make_session("s1")]

        [entry] = analytics.build_instructor_ratings(sessions, {"s1": evaluations}, catalog)

        assert [t.month for t in entry.recent_trends()] == [f"2024-0{m}" for m in range(4, 10)]


def instructor(name, average, sessions=1, evaluations=()):
    return analytics.InstructorRating(
        name=name,
        sessions=[make_session(f"{name}-{i}", instructor_name=name) for i in range(sessions)],
        evaluations=list(evaluations),
        average=average,
        total_evaluations=len(evaluations),
    )


class TestFilterAndSort:
    def test_search_is_case_insensitive_substring(self, catalog):
        people = [instructor("Kaleb Tesfaye", 4.2), instructor("Sara", 3.1)]

        result = analytics.filter_instructors(people, catalog, search="  tesf ")

        assert [i.name for i in result] == ["Kaleb Tesfaye"]

    def test_rating_band(self, catalog):
        people = [instructor("a", 4.0), instructor("b", 4.99), instructor("c", 5.0), instructor("d", 3.99)]

        result = analytics.filter_instructors(people, catalog, min_rating=4)

        assert [i.name for i in result] == ["a", "b"]

    def test_time_range_month_drops_instructors_without_recent_evaluations(self, catalog):
        now = at(2024, 6, 15)
        old = make_evaluation(submitted_at=at(2024, 4, 1), id="old")
        recent = make_evaluation(
            submitted_at=at(2024, 6, 1), ratings=((PRESENTATION, KNOWLEDGE, "good"),), id="new"
        )
        people = [instructor("Kaleb", 5.0, evaluations=[old]), instructor("Sara", 4.0, evaluations=[old, recent])]

        result = analytics.filter_instructors(people, catalog, time_range="month", now=now)

        assert [i.name for i in result] == ["Sara"]
        assert result[0].average == 3.0
        assert result[0].total_evaluations == 1
        # the unfiltered record is left alone
        assert people[1].total_evaluations == 2

    def test_time_range_cutoff_is_inclusive(self, catalog):
        now = at(2024, 6, 15)
        edge = make_evaluation(submitted_at=at(2024, 3, 15), id="edge")

        result = analytics.filter_instructors(
            [instructor("Kaleb", 5.0, evaluations=[edge])], catalog, time_range="quarter", now=now
        )

        assert [i.name for i in result] == ["Kaleb"]

    def test_unknown_time_range(self, catalog):
        with pytest.raises(ValueError):
            analytics.filter_instructors([], catalog, time_range="decade")

    def test_months_before_clamps_to_month_end(self):
        assert analytics.months_before(at(2024, 3, 31), 1) == at(2024, 2, 29)
        assert analytics.months_before(at(2024, 1, 15), 12) == at(2023, 1, 15)
        assert analytics.months_before(at(2024, 2, 10), 3) == at(2023, 11, 10)

    def test_sorting(self):
        people = [instructor("bea", 3.0, sessions=1), instructor("Abel", 4.5, sessions=3), instructor("Cy", 4.0, sessions=2)]

        assert [i.name for i in analytics.sort_instructors(people)] == ["Abel", "Cy", "bea"]
        assert [i.name for i in analytics.sort_instructors(people, "name")] == ["Abel", "bea", "Cy"]
        assert [i.name for i in analytics.sort_instructors(people, "sessions")] == ["Abel", "Cy", "bea"]

    def test_summary(self):
        people = [instructor("a", 4.0, evaluations=[make_evaluation(id="x")]), instructor("b", 3.5)]

        summary = analytics.summarize_instructors(people)

        assert summary == analytics.InstructorSummary(2, 3.75, 1)
        assert analytics.summarize_instructors([]) == analytics.InstructorSummary(0, 0.0, 0)


class TestScales:
    def test_split_profile_matches_observed_scales(self):
        catalog = build_catalog("split")
        assert catalog.session_scale is FOUR_POINT
        assert catalog.instructor_scale is FIVE_POINT

    def test_single_scale_profile(self, catalog):
        session_scale, instructor_scale = scales_for("five_point")
        assert session_scale is instructor_scale is FIVE_POINT

    def test_unknown_profile(self):
        with pytest.raises(ValueError):
            scales_for("ten_point")
