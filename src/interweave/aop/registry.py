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
"""AspectRegistry: collects and queries advice bindings for AOP weaving."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from interweave.aop.decorators import (
    ADVICE_KIND_ATTR,
    ASPECT_NAME_ATTR,
    POINTCUT_ATTR,
    PRIORITY_ATTR,
    get_order,
    is_aspect,
)
from interweave.aop.selector import Selector, as_selector
from interweave.aop.types import AdviceKind, OperationDescriptor
from interweave.kernel.exceptions import DuplicateAspect

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdviceBinding:
    """A single piece of advice bound to a selector.

    Attributes:
        kind: When the body runs (see :class:`AdviceKind`).
        pointcut: The selector expression string (or a built
            :class:`Selector`).
        handler: The advice body; receives the :class:`JoinPoint`.
        priority: Explicit priority.  ``None`` inherits the aspect's order
            when the binding is added to an :class:`Aspect`.
        aspect_name: Owning aspect, filled in by :class:`Aspect`.
        index: Position within the owning aspect, filled in by :class:`Aspect`.
    """

    kind: AdviceKind
    pointcut: str | Selector
    handler: Callable[..., Any]
    priority: int | None = None
    aspect_name: str = ""
    index: int = 0
    selector: Selector = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", AdviceKind(self.kind))
        # Parsing here makes malformed selectors fail at registration time.
        object.__setattr__(self, "selector", as_selector(self.pointcut))

    def matches(self, descriptor: OperationDescriptor) -> bool:
        return self.selector.matches(descriptor)


@dataclass(frozen=True)
class Aspect:
    """A named bundle of advice bindings registered as one unit.

    Usage::

        timing = Aspect(
            "timing",
            order=10,
            bindings=[AdviceBinding(AdviceKind.AROUND, 'exec("*Service.*")', measure)],
        )
    """

    name: str
    order: int = 0
    bindings: tuple[AdviceBinding, ...] = ()

    def __post_init__(self) -> None:
        resolved = tuple(
            dataclasses.replace(
                b,
                priority=self.order if b.priority is None else b.priority,
                aspect_name=self.name,
                index=i,
            )
            for i, b in enumerate(self.bindings)
        )
        object.__setattr__(self, "bindings", resolved)

    @classmethod
    def from_instance(cls, instance: Any) -> Aspect:
        """Build an aspect from an ``@aspect``-decorated instance.

        A method is an advice method if it carries the
        ``__interweave_advice_kind__`` attribute (set by the advice
        decorators).  Bindings keep the methods' definition order.
        """
        aspect_cls = type(instance)
        names: dict[str, None] = {}
        for klass in reversed(aspect_cls.__mro__):
            for name, attr in vars(klass).items():
                if getattr(attr, ADVICE_KIND_ATTR, None) is not None:
                    names[name] = None

        bindings: list[AdviceBinding] = []
        for name in names:
            method = getattr(instance, name)
            bindings.append(
                AdviceBinding(
                    kind=getattr(method, ADVICE_KIND_ATTR),
                    pointcut=getattr(method, POINTCUT_ATTR),
                    handler=method,
                    priority=getattr(method, PRIORITY_ATTR, None),
                )
            )

        name = getattr(aspect_cls, ASPECT_NAME_ATTR, None) or aspect_cls.__qualname__
        return cls(name=name, order=get_order(aspect_cls), bindings=tuple(bindings))


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable view of the registry published on every mutation."""

    generation: int
    bindings: tuple[AdviceBinding, ...]


class AspectRegistry:
    """Registry that holds aspects and provides ordered advice lookups.

    Bindings are ordered by priority (lower = outermost), then by the
    order in which each aspect name was *first* registered, then by
    position within the aspect.  Re-registering an aspect after
    unregistering it therefore restores the original ordering.

    Mutations are serialised by a lock and publish a new
    :class:`RegistrySnapshot`; readers never lock.

    Usage::

        registry = AspectRegistry()
        registry.register(AuditAspect())
        registry.register(security_aspect)

        bindings = registry.get_matching(descriptor)
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._aspects: dict[str, Aspect] = {}
        self._sequence: dict[str, int] = {}
        self._snapshot = RegistrySnapshot(generation=0, bindings=())

    # -- mutation -------------------------------------------------------------

    def register(self, aspect: Aspect | Any) -> Aspect:
        """Register an :class:`Aspect` or an ``@aspect``-decorated instance.

        Raises:
            MalformedSelector: if any binding's selector cannot be parsed.
            DuplicateAspect: if an aspect with the same name is registered.
        """
        if not isinstance(aspect, Aspect):
            if not is_aspect(aspect):
                raise TypeError(f"{type(aspect).__name__} is neither an Aspect nor an @aspect instance")
            aspect = Aspect.from_instance(aspect)

        with self._lock:
            if aspect.name in self._aspects:
                raise DuplicateAspect(aspect.name)
            self._sequence.setdefault(aspect.name, len(self._sequence))
            self._aspects[aspect.name] = aspect
            self._publish()

        logger.debug(
            "Registered aspect '%s' (order=%d, %d binding(s))", aspect.name, aspect.order, len(aspect.bindings)
        )
        return aspect

    def unregister(self, name: str) -> Aspect | None:
        """Remove the aspect called *name*; returns it, or None if absent."""
        with self._lock:
            removed = self._aspects.pop(name, None)
            if removed is not None:
                self._publish()

        if removed is not None:
            logger.debug("Unregistered aspect '%s'", name)
        return removed

    def clear(self) -> None:
        """Remove every aspect (registration sequence numbers are kept)."""
        with self._lock:
            self._aspects.clear()
            self._publish()

    def _publish(self) -> None:
        bindings = [b for a in self._aspects.values() for b in a.bindings]
        bindings.sort(key=lambda b: (b.priority, self._sequence[b.aspect_name], b.index))
        self._snapshot = RegistrySnapshot(
            generation=self._snapshot.generation + 1,
            bindings=tuple(bindings),
        )

    # -- queries --------------------------------------------------------------

    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    @property
    def generation(self) -> int:
        return self._snapshot.generation

    def get_all_bindings(self) -> list[AdviceBinding]:
        """Return all registered bindings in chain order."""
        return list(self._snapshot.bindings)

    def get_matching(self, target: OperationDescriptor | str) -> list[AdviceBinding]:
        """Return bindings whose selector matches *target*, in chain order.

        *target* may be a descriptor or a bare qualified name.
        """
        descriptor = _descriptor_for(target) if isinstance(target, str) else target
        return [b for b in self._snapshot.bindings if b.matches(descriptor)]

    def get_aspect(self, name: str) -> Aspect | None:
        return self._aspects.get(name)

    def aspect_names(self) -> list[str]:
        """Registered aspect names, in registration order."""
        return sorted(self._aspects, key=self._sequence.__getitem__)

    def __contains__(self, name: object) -> bool:
        return name in self._aspects

    def __len__(self) -> int:
        return len(self._aspects)


def _descriptor_for(qualified_name: str) -> OperationDescriptor:
    declaring_type, _, name = qualified_name.rpartition(".")
    return OperationDescriptor(qualified_name=qualified_name, name=name, declaring_type=declaring_type)
