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
"""LoggingPort for applications that keep to plain ``logging`` output."""

from __future__ import annotations

import logging
import sys
from typing import Any

from interweave.logging.port import ConfigurableAdapter, LoggingProperties, level_number

_LINE_FORMATS = {
    "json": '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
    "console": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
}


class KeyValueLogger:
    """Accepts structlog-style ``logger.info(event, **fields)`` calls.

    Fields are flattened into the message as ``event | k=v k2=v2``.
    """

    __slots__ = ("_target",)

    def __init__(self, target: logging.Logger) -> None:
        self._target = target

    def log(self, level: int, event: str, **fields: Any) -> None:
        if fields:
            event = event + " | " + " ".join(f"{key}={value}" for key, value in fields.items())
        self._target.log(level, event)

    def debug(self, event: str, **fields: Any) -> None:
        self.log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self.log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self.log(logging.WARNING, event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self.log(logging.ERROR, event, **fields)


class StdlibLoggingAdapter(ConfigurableAdapter):
    def get_logger(self, name: str) -> KeyValueLogger:
        return KeyValueLogger(logging.getLogger(name))

    def _install(self, props: LoggingProperties) -> None:
        logging.basicConfig(
            format=_LINE_FORMATS["json" if props.wants_json else "console"],
            stream=sys.stdout,
            level=level_number(props.root_level),
            force=True,
        )
