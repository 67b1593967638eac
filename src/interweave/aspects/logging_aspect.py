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
"""Ready-made logging aspect: enter / exit / failure events via structlog."""

from __future__ import annotations

import reprlib
from typing import Any

import structlog

from interweave.aop.registry import AdviceBinding, Aspect
from interweave.aop.selector import Selector
from interweave.aop.types import AdviceKind, JoinPoint

_repr = reprlib.Repr()
_repr.maxstring = 60
_repr.maxother = 60


def render_arguments(jp: JoinPoint) -> str:
    """Short, bounded rendering of a call's arguments."""
    parts = [_repr.repr(a) for a in jp.args]
    parts.extend(f"{k}={_repr.repr(v)}" for k, v in jp.kwargs.items())
    return ", ".join(parts)


def logging_aspect(
    pointcut: str | Selector,
    *,
    name: str = "logging",
    order: int = 0,
    logger: Any = None,
    level: str = "debug",
) -> Aspect:
    """Build an aspect that logs every matched call.

    Emits ``operation.enter`` and ``operation.exit`` at *level* and
    ``operation.failed`` at warning level.  Failures are re-raised
    untouched.

    Args:
        pointcut: Selector expression for the operations to log.
        name: Registry name of the aspect.
        order: Aspect priority; lower runs further out.
        logger: A structlog-style logger; defaults to
            ``structlog.get_logger("interweave.aspects.logging")``.
        level: Method name used for enter/exit events.
    """
    log = logger if logger is not None else structlog.get_logger("interweave.aspects.logging")
    emit = getattr(log, level)

    def on_enter(jp: JoinPoint) -> None:
        emit("operation.enter", operation=jp.qualified_name, args=render_arguments(jp))

    def on_exit(jp: JoinPoint) -> None:
        emit("operation.exit", operation=jp.qualified_name, result=_repr.repr(jp.return_value))

    def on_failure(jp: JoinPoint) -> None:
        log.warning("operation.failed", operation=jp.qualified_name, error=repr(jp.exception))

    return Aspect(
        name,
        order=order,
        bindings=(
            AdviceBinding(AdviceKind.BEFORE, pointcut, on_enter),
            AdviceBinding(AdviceKind.AFTER_RETURNING, pointcut, on_exit),
            AdviceBinding(AdviceKind.AFTER_THROWING, pointcut, on_failure),
        ),
    )
