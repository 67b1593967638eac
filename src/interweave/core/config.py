# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Engine configuration: YAML/TOML files, INTERWEAVE_* env vars and typed binding."""

from __future__ import annotations

import dataclasses
import os
import re
import tomllib
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, TypeVar, cast, get_type_hints

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

T = TypeVar("T")

_PREFIX_ATTR = "__interweave_config_prefix__"
_ENV_PREFIX = "INTERWEAVE_"
_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")
_MAX_PLACEHOLDER_DEPTH = 10
_MISSING = object()


def config_properties(prefix: str) -> Callable[[type[T]], type[T]]:
    """Bind a dataclass or pydantic model to the configuration section *prefix*.

    Usage:
        @config_properties(prefix="interweave.aop")
        class AopProperties(BaseModel):
            wrap_target_failures: bool = False
    """

    def decorator(cls: type[T]) -> type[T]:
        setattr(cls, _PREFIX_ATTR, prefix)
        return cls

    return decorator


def _read(path: Path) -> dict[str, Any]:
    if path.suffix == ".toml":
        with open(path, "rb") as f:
            return tomllib.load(f)
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        merged[key] = _merge(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return merged


def _coerce(value: Any, expected: Any) -> Any:
    if not isinstance(value, str):
        return value
    if expected is bool:
        return value.lower() in ("true", "1", "yes")
    if expected in (int, float):
        return expected(value)
    return value


class Config:
    """Nested configuration read with dotted keys.

    Lookup order for ``get("interweave.aop.proxy_strategy")``:

    1. the environment variable ``INTERWEAVE_AOP_PROXY_STRATEGY``
    2. the loaded data (dict, YAML or TOML)
    3. the caller's default (for ``bind()``, the property class defaults)
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = data or {}
        self._sources: list[str] = []

    @classmethod
    def from_file(cls, path: str | Path, active_profiles: Iterable[str] | None = None) -> Config:
        """Load *path*, then each ``{stem}-{profile}{suffix}`` overlay that exists.

        A missing base file yields an empty configuration and no overlays.
        """
        base = Path(path)
        config = cls()
        if not base.exists():
            return config

        config._absorb(base, str(base))
        for profile in active_profiles or ():
            overlay = base.with_name(f"{base.stem}-{profile}{base.suffix}")
            if overlay.exists():
                config._absorb(overlay, f"{overlay} (profile: {profile})")
        return config

    def _absorb(self, path: Path, label: str) -> None:
        self._data = _merge(self._data, _read(path))
        self._sources.append(label)

    @property
    def loaded_sources(self) -> list[str]:
        """Files merged into this configuration, base first."""
        return list(self._sources)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    # -- lookup ---------------------------------------------------------------

    @staticmethod
    def _env_key(key: str) -> str:
        # interweave.aop.proxy_strategy -> INTERWEAVE_AOP_PROXY_STRATEGY
        name = key.removeprefix("interweave.").upper()
        return _ENV_PREFIX + name.replace(".", "_").replace("-", "_")

    def _lookup(self, key: str) -> Any:
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or node.get(part) is None:
                return _MISSING
            node = node[part]
        return node

    def get(self, key: str, default: Any = None) -> Any:
        """Value at dotted *key*, or *default*.

        String values may embed placeholders:

        - ``${NAME}`` reads an environment variable or another config key
        - ``${NAME:fallback}`` uses ``fallback`` when neither exists
        """
        from_env = os.environ.get(self._env_key(key))
        if from_env is not None:
            return from_env
        value = self._lookup(key)
        if value is _MISSING:
            return default
        if isinstance(value, str) and "${" in value:
            return self._expand(value)
        return value

    def _expand(self, text: str, depth: int = 0) -> str:
        if depth > _MAX_PLACEHOLDER_DEPTH:
            raise ValueError(f"Placeholder recursion too deep in '{text}' (circular reference?)")

        def substitute(match: re.Match[str]) -> str:
            ref, sep, fallback = match.group(1).partition(":")
            from_env = os.environ.get(ref)
            if from_env is not None:
                return from_env
            found = self._lookup(ref)
            if found is not _MISSING:
                return self._expand(str(found), depth + 1)
            if sep:
                return fallback
            raise ValueError(f"Cannot resolve placeholder '${{{match.group(1)}}}'")

        return _PLACEHOLDER.sub(substitute, text)

    def get_section(self, prefix: str) -> dict[str, Any]:
        """The mapping stored under *prefix*, or an empty dict."""
        section = self._lookup(prefix)
        return section if isinstance(section, dict) else {}

    # -- binding --------------------------------------------------------------

    def _section_for(self, prefix: str, names: Iterable[str]) -> dict[str, Any]:
        section = dict(self.get_section(prefix))
        for name in names:
            from_env = os.environ.get(self._env_key(f"{prefix}.{name}"))
            if from_env is not None:
                section[name] = from_env
        return section

    def bind(self, config_cls: type[T]) -> T:
        """Build *config_cls* from its ``@config_properties`` section.

        Pydantic models are validated (failures raise ``ValueError``);
        dataclass fields get string-to-int/float/bool coercion.
        """
        prefix = getattr(config_cls, _PREFIX_ATTR, None)
        if prefix is None:
            raise ValueError(f"{config_cls.__name__} is not decorated with @config_properties")

        if isinstance(config_cls, type) and issubclass(config_cls, BaseModel):
            section = self._section_for(prefix, config_cls.model_fields)
            try:
                return cast(T, config_cls.model_validate(section))
            except ValidationError as exc:
                raise ValueError(f"Invalid configuration for {config_cls.__name__} ('{prefix}'):\n{exc}") from exc

        fields = dataclasses.fields(config_cls)  # type: ignore[arg-type]
        section = self._section_for(prefix, (f.name for f in fields))
        hints = get_type_hints(config_cls)
        kwargs = {f.name: _coerce(section[f.name], hints.get(f.name)) for f in fields if f.name in section}
        return config_cls(**kwargs)
