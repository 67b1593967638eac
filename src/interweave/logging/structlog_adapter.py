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
"""Default LoggingPort: structlog rendering on top of stdlib handlers."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from interweave.logging.port import ConfigurableAdapter, LoggingProperties, level_number

_SHARED_PROCESSORS: tuple[structlog.types.Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
)


def _renderers(json: bool) -> list[structlog.types.Processor]:
    if json:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


class StructlogAdapter(ConfigurableAdapter):
    """Renders ``event`` plus key/value context for a console or as JSON lines.

    This is what :func:`~interweave.aspects.logging_aspect` output looks
    like once an application calls :meth:`configure`.
    """

    def get_logger(self, name: str) -> Any:
        return structlog.get_logger(name)

    def _install(self, props: LoggingProperties) -> None:
        structlog.configure(
            processors=[*_SHARED_PROCESSORS, *_renderers(props.wants_json)],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        # structlog hands the rendered line to stdlib, which only prints it.
        logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level_number(props.root_level), force=True)
