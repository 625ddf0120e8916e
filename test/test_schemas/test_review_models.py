import logging

import pytest

from app.schemas.review import (
    Message,
    ResponseType,
    ReviewRequest,
    ReviewStatus,
    TriageOutcome,
    outcome_label,
)


def _row(**overrides):
    row = {
        "id": "r1",
        "conversation_id": "conv-1",
        "conversation_title": "Fever overnight",
        "child_name": "Mia",
        "child_age": 3,
        "child_dob": "2022-01-04",
        "triage_outcome": "urgent_visit",
        "status": "pending",
        "created_at": "2025-10-01T10:00:00Z",
        "updated_at": "2025-10-01T10:00:00Z",
    }
    row.update(overrides)
    return row


@pytest.mark.parametrize("raw", ["archived", "", "PENDING", None, 7])
def test_unknown_status_reads_as_pending(raw):
    assert ReviewStatus(raw) is ReviewStatus.PENDING
    assert ReviewRequest.model_validate(_row(status=raw)).status is ReviewStatus.PENDING


@pytest.mark.parametrize("raw", ["er_999", "", "HOME", None])
def test_unknown_outcome_reads_as_home_care(raw):
    assert TriageOutcome(raw) is TriageOutcome.HOME_CARE
    assert ReviewRequest.model_validate(_row(triage_outcome=raw)).triage_outcome is TriageOutcome.HOME_CARE


def test_known_values_parse():
    req = ReviewRequest.model_validate(_row(status="flagged", triage_outcome="er_911"))
    assert req.status is ReviewStatus.FLAGGED
    assert req.triage_outcome is TriageOutcome.ER_911
    assert req.triage_outcome.label == "ER - 911"


def test_outcome_label_falls_back_to_generic_transform():
    assert outcome_label("er_drive") == "ER - Drive"
    assert outcome_label("tele_visit") == "TELE VISIT"


def test_id_generated_and_messages_default_empty():
    row = _row()
    del row["id"]
    row["conversation_messages"] = None
    req = ReviewRequest.model_validate(row)
    assert req.id
    assert req.conversation_messages == ()


def test_messages_keep_order_and_outcome_fallback():
    req = ReviewRequest.model_validate(_row(conversation_messages=[
        {"id": "m1", "content": "He has a fever", "is_from_user": True, "timestamp": "t1"},
        {"id": "m2", "content": "Go to urgent care", "is_from_user": False, "timestamp": "t2",
         "triage_outcome": "bogus"},
    ]))
    assert [m.id for m in req.conversation_messages] == ["m1", "m2"]
    assert req.conversation_messages[0].triage_outcome is None
    assert req.conversation_messages[1].triage_outcome is TriageOutcome.HOME_CARE


def test_responded_without_response_is_accepted_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="app.schemas.review"):
        req = ReviewRequest.model_validate(_row(status="responded"))
    assert req.has_integrity_issue
    assert "lacks provider_response" in caplog.text


def test_responded_with_response_is_consistent():
    req = ReviewRequest.model_validate(_row(
        status="responded",
        responded_at="2025-10-02T09:00:00Z",
        provider_response={"id": "p1", "response_type": "agree", "content": "Agreed"},
    ))
    assert not req.has_integrity_issue
    assert not req.awaiting_response


def test_records_are_immutable():
    req = ReviewRequest.model_validate(_row())
    with pytest.raises(Exception):
        req.status = ReviewStatus.RESPONDED
    msg = Message(content="hi")
    with pytest.raises(Exception):
        msg.content = "bye"


def test_matches_is_case_insensitive_on_title_and_name():
    req = ReviewRequest.model_validate(_row())
    assert req.matches("FEVER")
    assert req.matches("mi")
    assert not req.matches("cough")


def test_null_descriptive_columns_read_as_defaults():
    req = ReviewRequest.model_validate(_row(
        id=None,
        conversation_title=None,
        child_name=None,
        child_age=None,
        child_dob=None,
        created_at=None,
        updated_at=None,
        conversation_messages=[{"id": None, "content": None, "is_from_user": None, "timestamp": None}],
    ))
    assert req.id
    assert req.conversation_title == ""
    assert req.child_name == ""
    assert req.child_age == 0
    assert req.child_dob == ""
    assert req.created_at == "" and req.updated_at == ""
    msg = req.conversation_messages[0]
    assert msg.id and msg.content == "" and msg.is_from_user is False
    assert not req.matches("fever")


def test_unknown_response_type_and_urgency_fall_back():
    req = ReviewRequest.model_validate(_row(
        status="responded",
        responded_at="2025-10-02T09:00:00Z",
        provider_response={
            "id": "p1",
            "response_type": "partial_agree",
            "content": None,
            "urgency_level": "critical",
        },
    ))
    assert req.provider_response.response_type is ResponseType.AGREE_WITH_THOUGHTS
    assert req.provider_response.urgency_level is None
    assert req.provider_response.content == ""


def test_response_type_enum_itself_stays_strict():
    with pytest.raises(ValueError):
        ResponseType("partial_agree")
    assert ResponseType.parse("escalation") is ResponseType.ESCALATION
