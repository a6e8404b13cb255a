import json
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from .contracts.results import ValidationIssue

INVALID_PAYLOAD = "invalid_payload"

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass
class ValidationOutcome(Generic[SchemaT]):
    value: SchemaT | None = None
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.issues


def issues_from_error(error: ValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            path=tuple(str(part) for part in detail["loc"]),
            message=detail["msg"],
            code=detail["type"],
        )
        for detail in error.errors()
    ]


def validate_object(data: Any, schema: type[SchemaT]) -> ValidationOutcome[SchemaT]:
    try:
        return ValidationOutcome(value=schema.model_validate(data))
    except ValidationError as e:
        return ValidationOutcome(issues=issues_from_error(e))


def validate_payload(
    raw: str | bytes, schema: type[SchemaT]
) -> ValidationOutcome[SchemaT]:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return ValidationOutcome(
            issues=[
                ValidationIssue(
                    path=(), message=f"Invalid JSON: {e}", code=INVALID_PAYLOAD
                )
            ]
        )
    return validate_object(data, schema)
