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
"""AOP decorators: @aspect, advice annotations, @order and @marker."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar, overload

from interweave.aop.introspection import MARKERS_ATTR
from interweave.aop.types import AdviceKind

T = TypeVar("T", bound=type)
F = TypeVar("F", bound=Callable[..., Any])

ASPECT_ATTR = "__interweave_aspect__"
ASPECT_NAME_ATTR = "__interweave_aspect_name__"
ORDER_ATTR = "__interweave_order__"
ADVICE_KIND_ATTR = "__interweave_advice_kind__"
POINTCUT_ATTR = "__interweave_pointcut__"
PRIORITY_ATTR = "__interweave_priority__"

HIGHEST_PRECEDENCE: int = -(2**31)
LOWEST_PRECEDENCE: int = 2**31 - 1


# ---------------------------------------------------------------------------
# @aspect: marks a class as an AOP aspect
# ---------------------------------------------------------------------------


@overload
def aspect(cls: T) -> T: ...
@overload
def aspect(*, name: str | None = None) -> Callable[[T], T]: ...


def aspect(cls: T | None = None, *, name: str | None = None) -> Any:
    """Mark a class as an Interweave aspect.

    Usable bare (``@aspect``) or with an explicit registry name
    (``@aspect(name="audit")``).  The name defaults to the class's
    qualified name.  Sets the following metadata on the class:

    * ``__interweave_aspect__``      = True
    * ``__interweave_aspect_name__`` = the registry name
    """

    def decorator(target: T) -> T:
        setattr(target, ASPECT_ATTR, True)
        setattr(target, ASPECT_NAME_ATTR, name or target.__qualname__.replace("<locals>.", ""))
        return target

    if cls is not None:
        return decorator(cls)
    return decorator


def is_aspect(obj: Any) -> bool:
    return bool(getattr(type(obj), ASPECT_ATTR, False))


# ---------------------------------------------------------------------------
# @order: relative priority of an aspect
# ---------------------------------------------------------------------------


def order(value: int) -> Callable[[T], T]:
    """Set the priority of an aspect class.

    Lower value = outermost (its before advice runs first, its after
    advice runs last).  Undecorated aspects default to 0.
    """

    def decorator(cls: T) -> T:
        setattr(cls, ORDER_ATTR, value)
        return cls

    return decorator


def get_order(cls: type) -> int:
    """Get the order value for a class, defaulting to 0."""
    return getattr(cls, ORDER_ATTR, 0)


# ---------------------------------------------------------------------------
# @marker: tags selectable with marker("...")
# ---------------------------------------------------------------------------


def marker(*names: str) -> Callable[[Any], Any]:
    """Attach marker tags to a method or a whole class.

    ::

        class OrderService:
            @marker("transactional", "audited")
            def create(self, order): ...
    """
    if not names:
        raise TypeError("marker() requires at least one name")

    def decorator(obj: Any) -> Any:
        existing = frozenset(getattr(obj, MARKERS_ATTR, ()))
        setattr(obj, MARKERS_ATTR, existing | frozenset(names))
        return obj

    return decorator


# ---------------------------------------------------------------------------
# Advice decorators: @before, @after_returning, @after_throwing, @after, @around
# ---------------------------------------------------------------------------


def _make_advice(kind: AdviceKind) -> Callable[..., Callable[[F], F]]:
    """Create an advice decorator factory for the given *kind*.

    The returned factory takes a selector expression and an optional
    per-advice ``priority`` (overriding the aspect's order), and returns a
    decorator that annotates the wrapped method with:

    * ``__interweave_advice_kind__``: e.g. ``AdviceKind.BEFORE``
    * ``__interweave_pointcut__``: the selector expression string
    * ``__interweave_priority__``: the priority override, or None
    """

    def factory(pointcut: str, *, priority: int | None = None) -> Callable[[F], F]:
        def decorator(fn: F) -> F:
            setattr(fn, ADVICE_KIND_ATTR, kind)
            setattr(fn, POINTCUT_ATTR, pointcut)
            setattr(fn, PRIORITY_ATTR, priority)
            return fn

        return decorator

    return factory


before = _make_advice(AdviceKind.BEFORE)
after_returning = _make_advice(AdviceKind.AFTER_RETURNING)
after_throwing = _make_advice(AdviceKind.AFTER_THROWING)
after = _make_advice(AdviceKind.AFTER)
around = _make_advice(AdviceKind.AROUND)
