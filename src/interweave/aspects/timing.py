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
"""Ready-made timing aspect: around advice measuring elapsed time."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import structlog

from interweave.aop.registry import AdviceBinding, Aspect
from interweave.aop.selector import Selector
from interweave.aop.types import AdviceKind, JoinPoint

TimingSink = Callable[[str, float], None]


def timing_aspect(
    pointcut: str | Selector,
    *,
    name: str = "timing",
    order: int = 0,
    sink: TimingSink | None = None,
) -> Aspect:
    """Build an aspect that measures each matched call.

    The elapsed time (seconds, ``time.perf_counter``) is reported as
    ``sink(qualified_name, seconds)`` on success and on failure.  Without a
    sink an ``operation.timed`` event is logged at debug level.
    """
    if sink is None:
        log = structlog.get_logger("interweave.aspects.timing")

        def sink(operation: str, seconds: float) -> None:
            log.debug("operation.timed", operation=operation, elapsed_ms=round(seconds * 1000, 3))

    def measure(jp: JoinPoint) -> Any:
        start = time.perf_counter()
        if jp.descriptor.is_async:

            async def timed() -> Any:
                try:
                    return await jp.proceed()
                finally:
                    sink(jp.qualified_name, time.perf_counter() - start)

            return timed()

        try:
            return jp.proceed()
        finally:
            sink(jp.qualified_name, time.perf_counter() - start)

    return Aspect(name, order=order, bindings=(AdviceBinding(AdviceKind.AROUND, pointcut, measure),))
