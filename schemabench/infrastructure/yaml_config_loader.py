from pathlib import Path
from typing import Any

import frontmatter
import yaml

from ..domain.contracts.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_TOKENS,
    DEFAULT_RUNS_PER_SCENARIO,
    DEFAULT_TEMPERATURE,
    BenchmarkConfig,
    ConfigLoaderContract,
    LoadedConfig,
)
from ..domain.scenarios import SCENARIO_IDS

KNOWN_KEYS = frozenset(
    {
        "models",
        "scenarios",
        "runs_per_scenario",
        "temperature",
        "max_retries",
        "max_tokens",
        "key_refs",
    }
)


class YamlConfigLoaderError(Exception):
    pass


class YamlConfigLoader(ConfigLoaderContract):
    def load(self, path: Path) -> LoadedConfig:
        path = Path(path)
        if not path.is_file():
            raise YamlConfigLoaderError(f"Config file not found: {path}")

        try:
            post = frontmatter.load(path)
        except yaml.YAMLError as e:
            raise YamlConfigLoaderError(f"Invalid YAML front matter in {path}: {e}")

        metadata = dict(post.metadata)
        unknown = sorted(set(metadata) - KNOWN_KEYS)
        if unknown:
            raise YamlConfigLoaderError(
                f"Unknown keys in {path}: {', '.join(unknown)}"
            )

        config = BenchmarkConfig(
            models=self._string_list(metadata, "models", [], path),
            scenarios=self._scenarios(metadata, path),
            runs_per_scenario=self._integer(
                metadata, "runs_per_scenario", DEFAULT_RUNS_PER_SCENARIO, path, minimum=1
            ),
            temperature=self._number(metadata, "temperature", DEFAULT_TEMPERATURE, path),
            max_retries=self._integer(
                metadata, "max_retries", DEFAULT_MAX_RETRIES, path, minimum=0
            ),
            max_tokens=self._integer(
                metadata, "max_tokens", DEFAULT_MAX_TOKENS, path, minimum=1
            ),
            key_refs=self._key_refs(metadata, path),
        )

        conversation = post.content.strip() or None
        return LoadedConfig(config=config, conversation=conversation)

    def _string_list(
        self, metadata: dict[str, Any], key: str, default: list[str], path: Path
    ) -> list[str]:
        value = metadata.get(key, default)
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise YamlConfigLoaderError(f"'{key}' must be a list of strings in {path}")
        return list(value)

    def _scenarios(self, metadata: dict[str, Any], path: Path) -> list[int]:
        value = metadata.get("scenarios", list(SCENARIO_IDS))
        if isinstance(value, int) and not isinstance(value, bool):
            value = [value]
        if not isinstance(value, list) or not all(
            isinstance(v, int) and not isinstance(v, bool) for v in value
        ):
            raise YamlConfigLoaderError(
                f"'scenarios' must be a list of scenario numbers in {path}"
            )
        return list(value)

    def _integer(
        self,
        metadata: dict[str, Any],
        key: str,
        default: int,
        path: Path,
        minimum: int,
    ) -> int:
        value = metadata.get(key, default)
        if not isinstance(value, int) or isinstance(value, bool):
            raise YamlConfigLoaderError(f"'{key}' must be an integer in {path}")
        if value < minimum:
            raise YamlConfigLoaderError(f"'{key}' must be >= {minimum} in {path}")
        return value

    def _number(
        self, metadata: dict[str, Any], key: str, default: float, path: Path
    ) -> float:
        value = metadata.get(key, default)
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise YamlConfigLoaderError(f"'{key}' must be a number in {path}")
        return float(value)

    def _key_refs(self, metadata: dict[str, Any], path: Path) -> dict[str, str]:
        key_refs = metadata.get("key_refs", {})
        if not isinstance(key_refs, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in key_refs.items()
        ):
            raise YamlConfigLoaderError(
                f"key_refs must be a mapping of provider name to env var name in {path}"
            )
        return dict(key_refs)
