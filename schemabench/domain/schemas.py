from typing import Literal

from pydantic import BaseModel, Field

ModelType = Literal["reasoning", "semantic"]


class Actor(BaseModel):
    title: str = Field(
        min_length=2,
        description=(
            'Job title for the recommended team member '
            '(e.g., "Database Administrator", "DevOps Engineer")'
        ),
    )
    reason: str = Field(
        min_length=20,
        description=(
            "Explanation of why this role is needed and how it addresses "
            "the team's skill gap"
        ),
    )
    skills: list[str] = Field(
        description="Array of 3-7 specific technical skills required for this role"
    )
    prompt: str = Field(
        min_length=30,
        description=(
            "System prompt to configure an AI assistant for this role, "
            "describing their expertise and approach"
        ),
    )
    model: ModelType = Field(
        description=(
            'Model type: "reasoning" for analytical/logical tasks, '
            '"semantic" for creative/conversational tasks'
        )
    )


class Action(BaseModel):
    type: Literal["create_actor"] = Field(description="Action type identifier")
    actor: Actor = Field(description="Details of the team member to add")


class RecommendationResponse(BaseModel):
    recommendation: str = Field(
        min_length=20,
        description=(
            "A conversational message explaining the hiring recommendation, "
            'starting with "I think you need to hire..."'
        ),
    )
    action: Action | None = Field(
        description=(
            "The action to take: create_actor to recommend a new team member, "
            "or null if no recommendation is appropriate"
        )
    )


class StepOneOutput(BaseModel):
    recommendation: str = Field(
        min_length=20,
        description="A conversational message explaining the hiring recommendation",
    )
    action: Literal["create_actor"] | None = Field(
        description=(
            'Set to "create_actor" if recommending a new team member, or null if not'
        )
    )


class StepTwoOutput(BaseModel):
    title: str = Field(
        min_length=2, description="Job title for the recommended team member"
    )
    reason: str = Field(min_length=20, description="Explanation of why this role is needed")
    skills: list[str] = Field(
        description="Array of 3-7 specific technical skills required"
    )


class StepThreeOutput(BaseModel):
    prompt: str = Field(
        min_length=30,
        description="System prompt to configure an AI assistant for this role",
    )
    model: ModelType = Field(description="Model type suited for this role")


STAGE_SCHEMAS: tuple[type[BaseModel], ...] = (
    StepOneOutput,
    StepTwoOutput,
    StepThreeOutput,
)


class MergeConsistencyError(Exception):
    """The merged stage outputs failed the whole-response schema."""


def merge_steps(
    step_one: StepOneOutput,
    step_two: StepTwoOutput | None,
    step_three: StepThreeOutput | None,
) -> RecommendationResponse:
    if step_one.action is None:
        return RecommendationResponse.model_construct(
            recommendation=step_one.recommendation, action=None
        )

    if step_two is None or step_three is None:
        raise MergeConsistencyError(
            "Step one requested create_actor but later steps are missing"
        )

    actor = Actor.model_construct(
        title=step_two.title,
        reason=step_two.reason,
        skills=list(step_two.skills),
        prompt=step_three.prompt,
        model=step_three.model,
    )
    action = Action.model_construct(type="create_actor", actor=actor)
    return RecommendationResponse.model_construct(
        recommendation=step_one.recommendation, action=action
    )
