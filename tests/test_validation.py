from conftest import INVALID_RESPONSE, VALID_RESPONSE

from schemabench.domain.schemas import RecommendationResponse, StepTwoOutput
from schemabench.domain.validation import (
    INVALID_PAYLOAD,
    validate_object,
    validate_payload,
)


def test_validate_payload_accepts_valid_response():
    outcome = validate_payload(VALID_RESPONSE, RecommendationResponse)

    assert outcome.ok
    assert outcome.issues == []
    assert outcome.value.action.actor.title == "Database Administrator"


def test_validate_payload_malformed_json_yields_single_issue():
    outcome = validate_payload("{not json", RecommendationResponse)

    assert not outcome.ok
    assert outcome.value is None
    assert len(outcome.issues) == 1
    assert outcome.issues[0].code == INVALID_PAYLOAD
    assert outcome.issues[0].path == ()
    assert outcome.issues[0].message.startswith("Invalid JSON")


def test_validate_payload_reports_one_issue_per_violation():
    outcome = validate_payload(INVALID_RESPONSE, RecommendationResponse)

    assert not outcome.ok
    paths = {issue.path for issue in outcome.issues}
    assert ("recommendation",) in paths
    assert ("action",) in paths


def test_validate_payload_accepts_bytes():
    outcome = validate_payload(VALID_RESPONSE.encode(), RecommendationResponse)

    assert outcome.ok


def test_validate_payload_nested_path_segments_are_strings():
    outcome = validate_object(
        {"title": "DBA", "reason": "x" * 25, "skills": ["a", 3]}, StepTwoOutput
    )

    assert not outcome.ok
    assert outcome.issues[0].path == ("skills", "1")


def test_null_action_is_valid():
    outcome = validate_object(
        {"recommendation": "Nobody new is needed right now.", "action": None},
        RecommendationResponse,
    )

    assert outcome.ok
    assert outcome.value.action is None
