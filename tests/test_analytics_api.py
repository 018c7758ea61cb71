"""
Analytics API tests.

Scenario (cohort on day 4 of 5, lessons for days 1-5):
    Alice  4 sent, reflections q3 (behavior observed) + q2  → readiness 63
    Bob    2 sent, reflection q1                            → readiness 33
    Carol  nothing sent                                     → not started

Covers:
    1. Cohort summary metrics and daily reflection counts
    2. Learner listing with completion / readiness, name ordering
    3. Learner progress: stats, day-by-day engagement, quality trend
    4. Org scoping (404), paid gate (402), auth (401), bad ids (400)
    5. Cohort list
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from microcoach.models import db
from microcoach.models.engagement import Reflection, SentMessage
from microcoach.models.organization import AdminUser
from microcoach.services import analytics_service
from microcoach.services.jwt_service import generate_access_token
from microcoach.utils.crypto import hash_password

TODAY = date(2026, 3, 10)


def _at(day, hour):
    return datetime(2026, 3, day, hour, 0, tzinfo=timezone.utc)


def _sent(cu_id, lesson_id, when):
    db.session.add(SentMessage(cohort_user_id=cu_id, lesson_id=lesson_id,
                               message_sid=f"SM{cu_id}-{lesson_id}", sent_at=when))


def _reflected(cu_id, lesson_id, quality, when, behavior=False, text="reflection"):
    db.session.add(Reflection(cohort_user_id=cu_id, lesson_id=lesson_id, response_text=text,
                              quality_score=quality, behavior_observed=behavior,
                              received_at=when))


@pytest.fixture()
def scenario(make_cohort, make_learner, enroll, make_lesson):
    cohort = make_cohort(name="Wave 1", start_date=TODAY - timedelta(days=3), duration_days=5)
    alice = enroll(cohort, make_learner(name="Alice"))
    carol = enroll(cohort, make_learner(name="Carol"))
    bob = enroll(cohort, make_learner(name="Bob"))
    lessons = {d: make_lesson(day_number=d).id for d in range(1, 6)}

    for d in range(1, 5):
        _sent(alice.id, lessons[d], _at(6 + d, 9))
    for d in range(1, 3):
        _sent(bob.id, lessons[d], _at(6 + d, 9))
    _reflected(alice.id, lessons[1], 3, _at(7, 18), behavior=True,
               text="I tried the greeting because it calms people down")
    _reflected(alice.id, lessons[2], 2, _at(8, 18))
    _reflected(bob.id, lessons[1], 1, _at(7, 20), text="ok")
    db.session.commit()

    return {
        "cohort_id": cohort.id,
        "alice": alice.id,
        "bob": bob.id,
        "carol": carol.id,
        "lessons": lessons,
    }


@pytest.fixture()
def stranger_headers(other_org):
    a = AdminUser(email="admin@globex.com", password_hash=hash_password("x"),
                  organization_id=other_org.id)
    db.session.add(a)
    db.session.commit()
    return {"Authorization": f"Bearer {generate_access_token(a.id, other_org.id)}"}


class TestCohortSummary:

    def test_metrics(self, client, auth_headers, scenario):
        resp = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/summary",
                          headers=auth_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["cohort"]["name"] == "Wave 1"
        assert body["cohort"]["duration_days"] == 5
        assert "today_day_number" in body["cohort"]
        assert body["metrics"] == {
            "learner_count": 3,
            "messages_sent": 6,
            "reflections_count": 3,
            "completion_rate": 50,
            "average_reflection_quality": pytest.approx(2.0),
        }

    def test_daily_reflections(self, client, auth_headers, scenario):
        body = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/summary",
                          headers=auth_headers).get_json()

        assert body["daily_reflections"] == [
            {"day_number": 1, "date": "2026-03-07", "reflections_count": 2},
            {"day_number": 2, "date": "2026-03-08", "reflections_count": 1},
        ]

    def test_day_number_for_given_date(self, org, scenario):
        summary = analytics_service.cohort_summary(scenario["cohort_id"], org.id, today=TODAY)
        assert summary["cohort"]["today_day_number"] == 4

        later = analytics_service.cohort_summary(scenario["cohort_id"], org.id,
                                                 today=TODAY + timedelta(days=2))
        assert later["cohort"]["today_day_number"] is None

    def test_empty_cohort(self, client, auth_headers, make_cohort):
        cohort_id = make_cohort().id
        body = client.get(f"/api/v1/cohorts/{cohort_id}/summary",
                          headers=auth_headers).get_json()

        assert body["metrics"]["learner_count"] == 0
        assert body["metrics"]["completion_rate"] is None
        assert body["metrics"]["average_reflection_quality"] is None
        assert body["daily_reflections"] == []


class TestCohortLearners:

    def test_listing(self, client, auth_headers, scenario):
        resp = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/learners",
                          headers=auth_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["cohort"]["id"] == scenario["cohort_id"]
        assert [l["name"] for l in body["learners"]] == ["Alice", "Bob", "Carol"]

        alice, bob, carol = body["learners"]
        assert alice["cohort_user_id"] == scenario["alice"]
        assert alice["messages_sent"] == 4
        assert alice["reflections_received"] == 2
        assert alice["completion_percent"] == 50
        assert alice["readiness_score"] == 63
        assert alice["last_reflection_at"].startswith("2026-03-08T18:00:00")

        assert bob["completion_percent"] == 50
        assert bob["readiness_score"] == 33

    def test_not_started_learner(self, client, auth_headers, scenario):
        body = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/learners",
                          headers=auth_headers).get_json()

        carol = body["learners"][2]
        assert carol["messages_sent"] == 0
        assert carol["reflections_received"] == 0
        assert carol["completion_percent"] is None
        assert carol["readiness_score"] is None
        assert carol["last_reflection_at"] is None

    def test_counts_not_multiplied_by_join(self, client, auth_headers, scenario):
        # Alice has 4 sends and 2 reflections; a sends x reflections join would give 8
        body = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/learners",
                          headers=auth_headers).get_json()
        assert body["learners"][0]["messages_sent"] == 4


class TestLearnerProgress:

    def test_stats(self, client, auth_headers, scenario):
        resp = client.get(f"/api/v1/cohort-users/{scenario['alice']}/progress",
                          headers=auth_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["learner"]["name"] == "Alice"
        assert body["learner"]["cohort_id"] == scenario["cohort_id"]
        assert body["learner"]["start_date"] == "2026-03-07"
        assert body["stats"] == {
            "lessons_sent": 4,
            "reflections_submitted": 2,
            "completion_percent": 50,
            "average_reflection_quality": pytest.approx(2.5),
            "behaviors_observed": 1,
            "behavior_percent": 50,
            "readiness_score": 63,
        }

    def test_engagement_by_day(self, client, auth_headers, scenario):
        body = client.get(f"/api/v1/cohort-users/{scenario['alice']}/progress",
                          headers=auth_headers).get_json()

        days = body["engagement_by_day"]
        assert [d["day_number"] for d in days] == [1, 2, 3, 4, 5]
        assert [d["sent"] for d in days] == [True, True, True, True, False]
        assert [d["reflection_submitted"] for d in days] == [True, True, False, False, False]
        assert days[0]["behavior_observed"] is True
        assert days[0]["quality_score"] == 3
        assert days[0]["reflection_snippet"].startswith("I tried the greeting")
        assert days[4]["sent_at"] is None
        assert days[4]["reflection_snippet"] is None

    def test_quality_trend(self, client, auth_headers, scenario):
        body = client.get(f"/api/v1/cohort-users/{scenario['alice']}/progress",
                          headers=auth_headers).get_json()

        assert body["quality_trend"] == [
            {"day_number": 1, "quality_score": 3},
            {"day_number": 2, "quality_score": 2},
        ]

    def test_not_started_defaults_to_zero(self, client, auth_headers, scenario):
        body = client.get(f"/api/v1/cohort-users/{scenario['carol']}/progress",
                          headers=auth_headers).get_json()

        assert body["stats"]["completion_percent"] == 0
        assert body["stats"]["readiness_score"] == 0
        assert body["stats"]["average_reflection_quality"] is None
        assert body["quality_trend"] == []

    def test_listing_and_progress_agree(self, client, auth_headers, scenario):
        listing = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/learners",
                             headers=auth_headers).get_json()
        bob_row = listing["learners"][1]
        progress = client.get(f"/api/v1/cohort-users/{scenario['bob']}/progress",
                              headers=auth_headers).get_json()

        assert progress["stats"]["readiness_score"] == bob_row["readiness_score"]
        assert progress["stats"]["completion_percent"] == bob_row["completion_percent"]


class TestAccessControl:

    @pytest.mark.parametrize("path", [
        "/api/v1/cohorts/{cohort}/summary",
        "/api/v1/cohorts/{cohort}/learners",
        "/api/v1/cohort-users/{cu}/progress",
    ])
    def test_other_org_gets_404(self, client, stranger_headers, scenario, path):
        url = path.format(cohort=scenario["cohort_id"], cu=scenario["alice"])
        resp = client.get(url, headers=stranger_headers)

        assert resp.status_code == 404
        assert resp.get_json()["code"] == "ERR_NOT_FOUND"

    def test_missing_cohort(self, client, auth_headers):
        resp = client.get("/api/v1/cohorts/9999/summary", headers=auth_headers)

        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Cohort not found"

    @pytest.mark.parametrize("path", [
        "/api/v1/cohorts/abc/summary",
        "/api/v1/cohorts/0/learners",
        "/api/v1/cohort-users/-3/progress",
    ])
    def test_invalid_id(self, client, auth_headers, path):
        resp = client.get(path, headers=auth_headers)

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_unpaid_org_gets_402(self, client, unpaid_headers, scenario):
        resp = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/summary",
                          headers=unpaid_headers)

        assert resp.status_code == 402
        assert resp.get_json()["code"] == "PAYMENT_REQUIRED"

    def test_missing_token(self, client, scenario):
        resp = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/summary")
        assert resp.status_code == 401

    def test_garbage_token(self, client, scenario):
        resp = client.get(f"/api/v1/cohorts/{scenario['cohort_id']}/summary",
                          headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401


class TestCohortList:

    def test_only_own_cohorts(self, client, auth_headers, make_cohort, other_org):
        make_cohort(name="Wave 1")
        make_cohort(name="Wave 2", role_level="lead")
        make_cohort(name="Elsewhere", organization=other_org)

        resp = client.get("/api/v1/cohorts", headers=auth_headers)

        assert resp.status_code == 200
        assert [c["name"] for c in resp.get_json()["cohorts"]] == ["Wave 1", "Wave 2"]

    def test_requires_token(self, client):
        assert client.get("/api/v1/cohorts").status_code == 401
