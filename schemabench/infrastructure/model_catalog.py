from pathlib import Path

import yaml

from ..domain.contracts.generator import ModelCatalogContract, ModelSpec
from .providers.factory import known_providers, parse_model_id

DEFAULT_MODELS: tuple[ModelSpec, ...] = (
    ModelSpec(id="openai-gpt5", name="GPT-5", provider="openai", model="gpt-5"),
    ModelSpec(id="openai-gpt4o", name="GPT-4o", provider="openai", model="gpt-4o"),
    ModelSpec(
        id="anthropic-sonnet",
        name="Claude Sonnet 4.5",
        provider="anthropic",
        model="claude-sonnet-4-5-20250929",
    ),
    ModelSpec(
        id="anthropic-opus",
        name="Claude Opus 4.5",
        provider="anthropic",
        model="claude-opus-4-5-20251101",
    ),
    ModelSpec(
        id="google-flash",
        name="Gemini 2.5 Flash",
        provider="google",
        model="gemini-2.5-flash",
    ),
    ModelSpec(
        id="google-pro",
        name="Gemini 3 Pro",
        provider="google",
        model="gemini-3-pro-preview",
    ),
    ModelSpec(id="mock", name="Mock (offline)", provider="mock", model="mock"),
)


class ModelCatalogError(Exception):
    pass


class ModelCatalog(ModelCatalogContract):
    def __init__(self, models: list[ModelSpec] | None = None) -> None:
        self._models: dict[str, ModelSpec] = {
            spec.id: spec for spec in (models if models is not None else DEFAULT_MODELS)
        }

    @classmethod
    def from_yaml(cls, path: Path) -> "ModelCatalog":
        """Default catalog extended (or overridden by id) from a YAML `models:` list."""
        if not path.exists():
            raise ModelCatalogError(f"Model catalog not found: {path}")

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ModelCatalogError(f"Invalid YAML in {path}: {e}")

        entries = data.get("models", []) if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ModelCatalogError(f"'models' in {path} must be a list")

        models = {spec.id: spec for spec in DEFAULT_MODELS}
        for entry in entries:
            spec = cls._parse_entry(entry, path)
            models[spec.id] = spec

        return cls(list(models.values()))

    @staticmethod
    def _parse_entry(entry: object, path: Path) -> ModelSpec:
        if not isinstance(entry, dict):
            raise ModelCatalogError(f"Model entries in {path} must be mappings")

        missing = [key for key in ("id", "provider", "model") if key not in entry]
        if missing:
            raise ModelCatalogError(
                f"Model entry in {path} is missing: {', '.join(missing)}"
            )
        if entry["provider"] not in known_providers():
            raise ModelCatalogError(
                f"Unknown provider '{entry['provider']}' for model '{entry['id']}'"
            )

        return ModelSpec(
            id=str(entry["id"]),
            name=str(entry.get("name", entry["id"])),
            provider=str(entry["provider"]),
            model=str(entry["model"]),
            supports_enforced=bool(entry.get("supports_enforced", True)),
        )

    def all(self) -> list[ModelSpec]:
        return list(self._models.values())

    def get(self, model_id: str) -> ModelSpec | None:
        if model_id in self._models:
            return self._models[model_id]

        if ":" in model_id:
            provider, model = parse_model_id(model_id)
            if provider in known_providers() and model:
                return ModelSpec(id=model_id, name=model, provider=provider, model=model)

        return None

    def resolve(self, model_ids: list[str]) -> tuple[list[ModelSpec], list[str]]:
        specs: list[ModelSpec] = []
        unknown: list[str] = []
        seen: set[str] = set()

        for model_id in model_ids:
            if model_id in seen:
                continue
            seen.add(model_id)

            spec = self.get(model_id)
            if spec is None:
                unknown.append(model_id)
            else:
                specs.append(spec)

        return specs, unknown
