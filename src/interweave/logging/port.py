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
"""LoggingPort: the logging contract the engine depends on, plus its properties."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from interweave.core.config import Config, config_properties


@config_properties(prefix="interweave.logging")
@dataclass
class LoggingProperties:
    """Logging configuration (interweave.logging.*).

    ``level`` maps logger names to level names; the ``root`` key sets the
    root level.  ``format`` is ``console`` or ``json``.
    """

    level: dict = field(default_factory=lambda: {"root": "INFO"})
    format: str = "console"

    @property
    def root_level(self) -> str:
        return str(self.level.get("root", "INFO")).upper()

    @property
    def module_levels(self) -> dict[str, str]:
        return {k: str(v).upper() for k, v in self.level.items() if k != "root"}

    @property
    def wants_json(self) -> bool:
        return self.format.lower() == "json"


@runtime_checkable
class LoggingPort(Protocol):
    """What the engine needs from a logging backend."""

    def configure(self, config: Config) -> None: ...
    def get_logger(self, name: str) -> Any: ...
    def set_level(self, name: str, level: str) -> None: ...


def level_number(level: str) -> int:
    """``"debug"`` -> ``logging.DEBUG``; unknown names fall back to INFO."""
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


class ConfigurableAdapter(ABC):
    """Shared ``configure``/``set_level`` plumbing for the bundled adapters.

    Subclasses install their output pipeline in :meth:`_install`; per-logger
    levels from ``interweave.logging.level`` are applied afterwards.
    """

    def __init__(self) -> None:
        self._properties = LoggingProperties()

    @property
    def properties(self) -> LoggingProperties:
        return self._properties

    def configure(self, config: Config) -> None:
        self._properties = config.bind(LoggingProperties)
        self._install(self._properties)
        for name, level in self._properties.module_levels.items():
            self.set_level(name, level)

    def set_level(self, name: str, level: str) -> None:
        logging.getLogger(name).setLevel(level_number(level))

    @abstractmethod
    def _install(self, props: LoggingProperties) -> None:
        """Set up the output pipeline for *props*."""
