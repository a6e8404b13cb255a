import json
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path

from jinja2 import StrictUndefined, Template
from pydantic import BaseModel

from ...domain.contracts.results import ValidationIssue

PROMPTS_DIR = Path(__file__).parent


@lru_cache(maxsize=32)
def load_prompt(name: str) -> str:
    prompt_file = PROMPTS_DIR / f"{name}.md"
    if not prompt_file.exists():
        raise FileNotFoundError(f"Prompt template not found: {prompt_file}")

    return prompt_file.read_text(encoding="utf-8").strip()


def render_prompt(name: str, **variables: object) -> str:
    template = Template(load_prompt(name), undefined=StrictUndefined)
    return template.render(**variables)


def schema_json(schema: type[BaseModel]) -> str:
    return json.dumps(schema.model_json_schema(), indent=2)


def get_system_prompt() -> str:
    return load_prompt("system")


def get_default_conversation() -> str:
    return load_prompt("conversation")


def get_context_prompt(conversation: str) -> str:
    return render_prompt("context", conversation=conversation)


def _mode_suffix(enforced: bool) -> str:
    return "enforced" if enforced else "guided"


def get_one_shot_prompt(schema: type[BaseModel], enforced: bool) -> str:
    return render_prompt(
        f"one_shot_{_mode_suffix(enforced)}", schema=schema_json(schema)
    )


def get_stage_prompt(stage: int, schema: type[BaseModel], enforced: bool) -> str:
    return render_prompt(
        f"step{stage}_{_mode_suffix(enforced)}", schema=schema_json(schema)
    )


def format_issue_path(path: Iterable[str]) -> str:
    return ".".join(path) or "root"


def get_retry_prompt(
    previous_response: str,
    issues: Iterable[ValidationIssue],
    error_message: str | None = None,
) -> str:
    errors = [
        {"path": format_issue_path(issue.path), "message": issue.message}
        for issue in issues
    ]
    if error_message:
        errors.append({"path": "root", "message": error_message})

    return render_prompt(
        "retry",
        previous_response=previous_response or "(empty response)",
        errors=errors,
    )
