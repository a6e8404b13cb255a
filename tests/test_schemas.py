import pytest

from schemabench.domain.schemas import (
    MergeConsistencyError,
    RecommendationResponse,
    StepOneOutput,
    StepThreeOutput,
    StepTwoOutput,
    merge_steps,
)
from schemabench.domain.validation import validate_object


def test_merge_steps_assigns_fields_without_inference():
    merged = merge_steps(
        StepOneOutput.model_construct(recommendation="R", action="create_actor"),
        StepTwoOutput.model_construct(title="T", reason="Why", skills=["a", "b"]),
        StepThreeOutput.model_construct(prompt="P", model="semantic"),
    )

    assert merged.recommendation == "R"
    assert merged.action.type == "create_actor"
    assert merged.action.actor.title == "T"
    assert merged.action.actor.reason == "Why"
    assert merged.action.actor.skills == ["a", "b"]
    assert merged.action.actor.prompt == "P"
    assert merged.action.actor.model == "semantic"


def test_merge_steps_null_action_ignores_later_steps():
    merged = merge_steps(
        StepOneOutput.model_construct(recommendation="R", action=None), None, None
    )

    assert merged.action is None


def test_merge_steps_missing_later_steps_raises():
    with pytest.raises(MergeConsistencyError):
        merge_steps(
            StepOneOutput.model_construct(recommendation="R", action="create_actor"),
            None,
            None,
        )


def test_merged_short_fields_fail_whole_schema_check():
    merged = merge_steps(
        StepOneOutput.model_construct(recommendation="R", action="create_actor"),
        StepTwoOutput.model_construct(title="T", reason="Why", skills=["a"]),
        StepThreeOutput.model_construct(prompt="P", model="semantic"),
    )

    outcome = validate_object(merged.model_dump(mode="json"), RecommendationResponse)

    assert not outcome.ok


def test_action_is_required_even_when_null():
    outcome = validate_object(
        {"recommendation": "A recommendation long enough."}, RecommendationResponse
    )

    assert not outcome.ok
    assert outcome.issues[0].path == ("action",)


def test_actor_model_is_restricted():
    outcome = validate_object(
        {"prompt": "p" * 40, "model": "creative"}, StepThreeOutput
    )

    assert not outcome.ok
    assert outcome.issues[0].path == ("model",)


def test_merge_steps_produces_full_response_shape():
    skills = ["PostgreSQL", "Indexing", "Tuning"]
    merged = merge_steps(
        StepOneOutput.model_construct(recommendation="R", action="create_actor"),
        StepTwoOutput.model_construct(
            title="DBA", reason="needs db help, long enough text", skills=skills
        ),
        StepThreeOutput.model_construct(
            prompt="You are a DBA expert with enough characters", model="reasoning"
        ),
    )

    assert merged.model_dump(mode="json") == {
        "recommendation": "R",
        "action": {
            "type": "create_actor",
            "actor": {
                "title": "DBA",
                "reason": "needs db help, long enough text",
                "skills": skills,
                "prompt": "You are a DBA expert with enough characters",
                "model": "reasoning",
            },
        },
    }
