import os
from abc import ABC

from pydantic import BaseModel

from ...domain.contracts.generator import GeneratorContract, Message
from ...domain.validation import validate_payload


def require_api_key(env_var: str) -> str:
    api_key = os.getenv(env_var)
    if not api_key:
        raise ValueError(f"{env_var} environment variable not set")
    return api_key


class Provider(GeneratorContract, ABC):
    def split_system(self, messages: list[Message]) -> tuple[str | None, list[Message]]:
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        rest = [m for m in messages if m["role"] != "system"]
        return ("\n\n".join(system_parts) or None), rest

    def merge_consecutive(self, messages: list[Message]) -> list[Message]:
        merged: list[Message] = []
        for message in messages:
            if merged and merged[-1]["role"] == message["role"]:
                merged[-1] = {
                    "role": message["role"],
                    "content": f"{merged[-1]['content']}\n\n{message['content']}",
                }
            else:
                merged.append(dict(message))
        return merged

    def parse_enforced(self, text: str, schema: type[BaseModel]) -> BaseModel | None:
        """Parsed value of an enforced response, or None so the caller re-validates."""
        return validate_payload(text, schema).value
