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
"""Unified exception hierarchy for Interweave.

All engine exceptions inherit from InterweaveException, enabling unified
error handling across modules.

Categories:
- Registration time: MalformedSelector, DuplicateAspect
- Wrap time: NonInterceptable
- Call time: AdviceFailure, TargetFailure
"""

from __future__ import annotations


# =============================================================================
# Base Exception
# =============================================================================


class InterweaveException(Exception):
    """Base exception for all Interweave errors.

    Carries an optional error code and context dict for structured error data.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "SELECTOR_MALFORMED").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


# =============================================================================
# Registration-time Exceptions
# =============================================================================


class MalformedSelector(InterweaveException):
    """Selector text cannot be parsed.

    ``context`` holds the offending ``expression`` and the ``position``
    (0-based character offset) where parsing failed.
    """

    def __init__(self, message: str, expression: str, position: int = 0) -> None:
        super().__init__(
            f"{message} (at position {position} in {expression!r})",
            code="SELECTOR_MALFORMED",
            context={"expression": expression, "position": position},
        )


class DuplicateAspect(InterweaveException):
    """An aspect with the same name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Aspect '{name}' is already registered",
            code="ASPECT_DUPLICATE",
            context={"aspect": name},
        )


# =============================================================================
# Wrap-time Exceptions
# =============================================================================


class NonInterceptable(InterweaveException):
    """The target (or one of its operations) cannot be proxied."""

    def __init__(self, message: str, target: str | None = None, operation: str | None = None) -> None:
        context: dict = {}
        if target is not None:
            context["target"] = target
        if operation is not None:
            context["operation"] = operation
        super().__init__(message, code="NON_INTERCEPTABLE", context=context)


# =============================================================================
# Call-time Exceptions
# =============================================================================


class AdviceFailure(InterweaveException):
    """An advice body raised an unhandled exception.

    The original exception is available as ``__cause__``.
    """

    def __init__(self, aspect: str, kind: str, operation: str, cause: BaseException) -> None:
        super().__init__(
            f"{kind} advice of aspect '{aspect}' failed on {operation}: {cause!r}",
            code="ADVICE_FAILURE",
            context={"aspect": aspect, "kind": kind, "operation": operation},
        )


class TargetFailure(InterweaveException):
    """The intercepted implementation raised (only when wrapping is enabled).

    The original exception is available as ``__cause__``.
    """

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(
            f"{operation} raised {cause!r}",
            code="TARGET_FAILURE",
            context={"operation": operation},
        )
