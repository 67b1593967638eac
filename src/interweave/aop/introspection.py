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
"""Operation introspection: builds OperationDescriptors from classes."""

from __future__ import annotations

import inspect
import typing
from typing import Any

from interweave.aop.types import OperationDescriptor

MARKERS_ATTR = "__interweave_markers__"


def type_name_of(cls: type) -> str:
    """Dotted ``module.Qualname`` of *cls*, without ``<locals>`` segments."""
    qualname = cls.__qualname__.replace("<locals>.", "")
    return f"{cls.__module__}.{qualname}"


def _render_type(tp: Any) -> str:
    if tp is inspect.Parameter.empty:
        return "Any"
    if isinstance(tp, str):
        return tp
    if tp is None or tp is type(None):
        return "None"
    if typing.get_origin(tp) is None and isinstance(tp, type):
        return tp.__name__
    return str(tp).replace("typing.", "")


def _resolved_hints(fn: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(fn)
    except (NameError, TypeError, AttributeError):
        # Forward references that cannot be resolved stay as written.
        return dict(getattr(fn, "__annotations__", {}))


def public_operations(cls: type) -> dict[str, Any]:
    """Return ``{name: function}`` for the public instance methods of *cls*.

    Static methods, class methods, properties and ``_private`` names are not
    operations.
    """
    operations: dict[str, Any] = {}
    for name in dir(cls):
        if name.startswith("_"):
            continue
        attr = inspect.getattr_static(cls, name)
        if isinstance(attr, (staticmethod, classmethod)):
            continue
        if inspect.isfunction(attr):
            operations[name] = attr
    return operations


def describe(cls: type, name: str, fn: Any = None, *, prefix: str | None = None) -> OperationDescriptor:
    """Describe operation *name* of *cls*.

    *prefix* replaces the ``module.Qualname`` part of the qualified name,
    so ``describe(OrderService, "create", prefix="OrderService")`` yields
    ``OrderService.create``.
    """
    if fn is None:
        fn = inspect.getattr_static(cls, name)
    declaring_type = prefix if prefix is not None else type_name_of(cls)

    hints = _resolved_hints(fn)
    try:
        params = list(inspect.signature(fn).parameters.values())
    except (TypeError, ValueError):
        params = []
    if params and params[0].name in ("self", "cls"):
        params = params[1:]
    parameter_types = tuple(_render_type(hints.get(p.name, p.annotation)) for p in params)
    return_type = _render_type(hints.get("return", inspect.Parameter.empty))

    markers = frozenset(getattr(fn, MARKERS_ATTR, ())) | frozenset(getattr(cls, MARKERS_ATTR, ()))

    return OperationDescriptor(
        qualified_name=f"{declaring_type}.{name}",
        name=name,
        declaring_type=declaring_type,
        parameter_types=parameter_types,
        return_type=return_type,
        markers=markers,
        is_async=inspect.iscoroutinefunction(fn),
        is_final=bool(getattr(fn, "__final__", False)),
    )


def describe_all(cls: type, *, prefix: str | None = None) -> dict[str, OperationDescriptor]:
    """Describe every public operation of *cls*."""
    return {name: describe(cls, name, fn, prefix=prefix) for name, fn in public_operations(cls).items()}
