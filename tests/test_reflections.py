"""
Inbound reflection and behavior flag tests.

Covers:
    1. Heuristic quality scoring
    2. Upsert: one reflection per (cohort_user, lesson), later reply wins
    3. Sender normalization and the ignore paths
    4. Attachment to the most recent send across enrollments
    5. /sms/inbound TwiML answers
    6. PATCH behaviorObserved: validation, org scoping, alias path
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from microcoach.models import db
from microcoach.models.engagement import Reflection, SentMessage
from microcoach.models.organization import AdminUser
from microcoach.services import reflection_service
from microcoach.services.jwt_service import generate_access_token
from microcoach.services.reflection_service import (
    auto_quality_score,
    normalize_sender,
    record_inbound_reflection,
)
from microcoach.utils.crypto import hash_password

PHONE = "+15550001111"


def _send(cohort_user, lesson, sent_at=None, sid="SM1"):
    msg = SentMessage(
        cohort_user_id=cohort_user.id,
        lesson_id=lesson.id,
        message_sid=sid,
        sent_at=sent_at or datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc),
    )
    db.session.add(msg)
    db.session.commit()
    return msg


def _reflections():
    return db.session.execute(db.select(Reflection).order_by(Reflection.id)).scalars().all()


@pytest.fixture()
def sent_lesson(make_cohort, make_learner, enroll, make_lesson):
    """Learner PHONE received lesson day 1."""
    cohort = make_cohort()
    learner = make_learner(phone_number=PHONE)
    cu = enroll(cohort, learner)
    lesson = make_lesson(day_number=1)
    _send(cu, lesson)
    return cu, lesson


class TestQualityScore:

    @pytest.mark.parametrize("text, expected", [
        ("ok", 1),
        ("   fine   ", 1),
        ("It went well enough today", 2),
        ("Good because it helped", 3),
        ("NEXT TIME ask earlier", 3),
        ("x" * 81, 3),
        ("x" * 80, 2),
        ("", 1),
        (None, 1),
    ])
    def test_scores(self, text, expected):
        assert auto_quality_score(text) == expected

    def test_keyword_anywhere_in_text(self):
        assert auto_quality_score("Today I learned a lot") == 3


class TestNormalizeSender:

    def test_strips_whatsapp_prefix(self):
        assert normalize_sender("whatsapp:+15550001111") == PHONE

    def test_plain_number_untouched(self):
        assert normalize_sender(" +15550001111 ") == PHONE

    def test_none(self):
        assert normalize_sender(None) == ""


class TestRecordInbound:

    def test_stores_reflection_against_last_send(self, sent_lesson):
        cu, lesson = sent_lesson
        cu_id, lesson_id = cu.id, lesson.id

        reflection = record_inbound_reflection(PHONE, "  It went well enough today  ")

        assert reflection is not None
        assert reflection.cohort_user_id == cu_id
        assert reflection.lesson_id == lesson_id
        assert reflection.response_text == "It went well enough today"
        assert reflection.quality_score == 2
        assert reflection.behavior_observed is False
        assert reflection.received_at is not None

    def test_second_reply_overwrites(self, sent_lesson):
        first = record_inbound_reflection(PHONE, "ok")
        first_id = first.id
        second = record_inbound_reflection(PHONE, "I tried it and it worked")

        rows = _reflections()
        assert len(rows) == 1
        assert second.id == first_id
        assert rows[0].response_text == "I tried it and it worked"
        assert rows[0].quality_score == 3

    def test_reply_keeps_behavior_flag(self, sent_lesson, org):
        reflection = record_inbound_reflection(PHONE, "ok")
        reflection_service.set_behavior_observed(reflection.id, org.id, True)

        updated = record_inbound_reflection(PHONE, "still going")

        assert updated.behavior_observed is True

    def test_whatsapp_sender(self, sent_lesson):
        assert record_inbound_reflection(f"whatsapp:{PHONE}", "hello there") is not None
        assert len(_reflections()) == 1

    @pytest.mark.parametrize("sender, text", [
        (PHONE, ""),
        (PHONE, "   "),
        ("", "hello"),
        (None, None),
    ])
    def test_empty_input_ignored(self, sent_lesson, sender, text):
        assert record_inbound_reflection(sender, text) is None
        assert _reflections() == []

    def test_unknown_number_ignored(self, sent_lesson):
        assert record_inbound_reflection("+19999999999", "hello") is None
        assert _reflections() == []

    def test_learner_without_send_ignored(self, make_learner):
        make_learner(phone_number=PHONE)
        assert record_inbound_reflection(PHONE, "hello") is None
        assert _reflections() == []

    def test_attaches_to_latest_send_across_enrollments(self, make_cohort, make_learner,
                                                        enroll, make_lesson):
        learner = make_learner(phone_number=PHONE)
        cu_a = enroll(make_cohort(name="A"), learner)
        cu_b = enroll(make_cohort(name="B"), learner)
        day1 = make_lesson(day_number=1)
        day2 = make_lesson(day_number=2)
        _send(cu_a, day2, sent_at=datetime(2026, 3, 11, 9, 0, tzinfo=timezone.utc))
        _send(cu_b, day1, sent_at=datetime(2026, 3, 12, 9, 0, tzinfo=timezone.utc))
        expected = (cu_b.id, day1.id)

        reflection = record_inbound_reflection(PHONE, "answer")

        assert (reflection.cohort_user_id, reflection.lesson_id) == expected

    def test_same_timestamp_uses_newest_row(self, make_cohort, make_learner, enroll,
                                            make_lesson):
        learner = make_learner(phone_number=PHONE)
        cu = enroll(make_cohort(), learner)
        day1 = make_lesson(day_number=1)
        day2 = make_lesson(day_number=2)
        at = datetime(2026, 3, 11, 9, 0, tzinfo=timezone.utc)
        _send(cu, day1, sent_at=at)
        _send(cu, day2, sent_at=at)
        day2_id = day2.id

        assert record_inbound_reflection(PHONE, "answer").lesson_id == day2_id

    def test_store_error_propagates_and_rolls_back(self, sent_lesson):
        boom = RuntimeError("db down")
        with patch.object(reflection_service.store, "upsert_reflection", side_effect=boom):
            with pytest.raises(RuntimeError):
                record_inbound_reflection(PHONE, "hello")
        assert _reflections() == []


class TestInboundWebhook:

    def test_ack_when_stored(self, client, sent_lesson):
        resp = client.post("/sms/inbound", data={"From": PHONE, "Body": "I will try again"})

        assert resp.status_code == 200
        assert resp.mimetype == "text/xml"
        assert resp.get_data(as_text=True) == (
            "<Response><Message>Thanks for your reflection. "
            "Keep going - one day at a time.</Message></Response>"
        )
        assert len(_reflections()) == 1

    def test_empty_response_for_unknown_sender(self, client, sent_lesson):
        resp = client.post("/sms/inbound", data={"From": "+19999999999", "Body": "hi"})

        assert resp.status_code == 200
        assert resp.get_data(as_text=True) == "<Response></Response>"

    def test_empty_response_for_missing_fields(self, client):
        resp = client.post("/sms/inbound", data={})

        assert resp.status_code == 200
        assert resp.get_data(as_text=True) == "<Response></Response>"

    def test_store_error_still_answers_200(self, client, sent_lesson):
        with patch.object(reflection_service, "record_inbound_reflection",
                          side_effect=RuntimeError("db down")):
            resp = client.post("/sms/inbound", data={"From": PHONE, "Body": "hi"})

        assert resp.status_code == 200
        assert resp.get_data(as_text=True) == "<Response></Response>"


class TestBehaviorFlag:

    @pytest.fixture()
    def reflection_id(self, sent_lesson):
        return record_inbound_reflection(PHONE, "I tried it").id

    def test_set_true(self, client, auth_headers, reflection_id):
        resp = client.patch(f"/api/v1/reflections/{reflection_id}",
                            json={"behaviorObserved": True}, headers=auth_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["reflection"]["id"] == reflection_id
        assert body["reflection"]["behavior_observed"] is True
        assert db.session.get(Reflection, reflection_id, populate_existing=True).behavior_observed is True

    def test_alias_path(self, client, auth_headers, reflection_id):
        client.patch(f"/api/v1/reflections/{reflection_id}",
                     json={"behaviorObserved": True}, headers=auth_headers)
        resp = client.patch(f"/api/v1/reflections/{reflection_id}/behavior",
                            json={"behaviorObserved": False}, headers=auth_headers)

        assert resp.status_code == 200
        assert resp.get_json()["reflection"]["behavior_observed"] is False

    @pytest.mark.parametrize("payload", [
        {"behaviorObserved": "yes"},
        {"behaviorObserved": 1},
        {"behaviorObserved": None},
        {},
    ])
    def test_non_boolean_rejected(self, client, auth_headers, reflection_id, payload):
        resp = client.patch(f"/api/v1/reflections/{reflection_id}",
                            json=payload, headers=auth_headers)

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_invalid_id(self, client, auth_headers):
        resp = client.patch("/api/v1/reflections/abc",
                            json={"behaviorObserved": True}, headers=auth_headers)
        assert resp.status_code == 400

    def test_unknown_reflection(self, client, auth_headers):
        resp = client.patch("/api/v1/reflections/9999",
                            json={"behaviorObserved": True}, headers=auth_headers)
        assert resp.status_code == 404

    def test_other_org_cannot_update(self, client, other_org, reflection_id):
        stranger = AdminUser(email="admin@globex.com", password_hash=hash_password("x"),
                             organization_id=other_org.id)
        db.session.add(stranger)
        db.session.commit()
        headers = {"Authorization": f"Bearer {generate_access_token(stranger.id, other_org.id)}"}

        resp = client.patch(f"/api/v1/reflections/{reflection_id}",
                            json={"behaviorObserved": True}, headers=headers)

        assert resp.status_code == 404
        assert db.session.get(Reflection, reflection_id, populate_existing=True).behavior_observed is False

    def test_requires_token(self, client, reflection_id):
        resp = client.patch(f"/api/v1/reflections/{reflection_id}",
                            json={"behaviorObserved": True})
        assert resp.status_code == 401
