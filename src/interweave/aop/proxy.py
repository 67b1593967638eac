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
"""ProxyFactory: produces woven substitutes for target objects.

Two strategies:

* **interface** : when the target's class has abstract (ABC) or
  ``Protocol`` bases, the proxy subclasses those interfaces and exposes
  exactly their operations, each routed through its chain.
* **delegate** : otherwise the proxy subclasses the target's class, owns
  the target, overrides every public method to route through its chain and
  forwards everything else (properties, private helpers, dunders such as
  ``__call__``, plain attributes) to the target.

Self-invocation is not intercepted: inside the target, ``self`` is the
target rather than the proxy, so ``self.other()`` goes straight to the
implementation.  This is inherent to proxy-based weaving and is kept.
"""

from __future__ import annotations

import functools
import inspect
import logging
import types
from abc import ABC
from collections.abc import Callable
from enum import StrEnum
from typing import Any, Generic, Protocol

from interweave.aop.chain import ChainBuilder
from interweave.aop.introspection import describe, public_operations, type_name_of
from interweave.aop.properties import AopProperties
from interweave.aop.registry import AspectRegistry
from interweave.aop.types import OperationDescriptor
from interweave.core.config import Config
from interweave.kernel.exceptions import NonInterceptable

logger = logging.getLogger(__name__)

PROXY_TARGET_ATTR = "__interweave_target__"
PROXY_STRATEGY_ATTR = "__interweave_strategy__"

_NOT_INTERFACES = (object, Protocol, Generic, ABC)

# Members the proxy class needs for itself; every other callable or property
# the target's class defines is forwarded so that it runs with the target as self.
_KEPT_ON_PROXY = frozenset(
    {
        "__init__",
        "__new__",
        "__del__",
        "__init_subclass__",
        "__subclasshook__",
        "__class_getitem__",
        "__set_name__",
        "__post_init__",
        "__getattr__",
        "__getattribute__",
        "__setattr__",
        "__delattr__",
        "__repr__",
        "__reduce__",
        "__reduce_ex__",
        "__getstate__",
        "__setstate__",
    }
)


class ProxyStrategy(StrEnum):
    AUTO = "auto"
    INTERFACE = "interface"
    DELEGATE = "delegate"


# ---------------------------------------------------------------------------
# Proxy inspection helpers
# ---------------------------------------------------------------------------


def is_proxy(obj: Any) -> bool:
    return getattr(type(obj), PROXY_STRATEGY_ATTR, None) is not None


def unwrap(obj: Any) -> Any:
    """Return the target behind a proxy, or *obj* itself."""
    if is_proxy(obj):
        return object.__getattribute__(obj, PROXY_TARGET_ATTR)
    return obj


def strategy_of(obj: Any) -> ProxyStrategy | None:
    return getattr(type(obj), PROXY_STRATEGY_ATTR, None)


def _target(proxy: Any) -> Any:
    return object.__getattribute__(proxy, PROXY_TARGET_ATTR)


# ---------------------------------------------------------------------------
# Interface discovery
# ---------------------------------------------------------------------------


def _is_protocol(cls: type) -> bool:
    return bool(getattr(cls, "_is_protocol", False)) and cls is not Protocol


def find_interfaces(cls: type) -> tuple[type, ...]:
    """Abstract or Protocol bases of *cls*, most-derived only, in MRO order."""
    found = [
        base
        for base in cls.__mro__[1:]
        if base not in _NOT_INTERFACES and (_is_protocol(base) or inspect.isabstract(base))
    ]
    return tuple(b for b in found if not any(o is not b and b in o.__mro__ for o in found))


def interface_members(interfaces: tuple[type, ...]) -> tuple[dict[str, Any], set[str]]:
    """Public ``{name: function}`` operations and property names declared by *interfaces*."""
    operations: dict[str, Any] = {}
    properties: set[str] = set()
    for iface in interfaces:
        for klass in reversed(iface.__mro__):
            if klass in _NOT_INTERFACES:
                continue
            for name, attr in vars(klass).items():
                if name.startswith("_"):
                    continue
                if inspect.isfunction(attr):
                    operations[name] = attr
                elif isinstance(attr, property):
                    properties.add(name)
    return operations, properties


def forwarded_members(cls: type, routed: set[str] | dict[str, Any]) -> dict[str, Any]:
    """Forwarders for what *cls* defines beyond its *routed* operations.

    Covers properties, ``_private`` helpers and dunders such as ``__call__``
    or ``__len__``.  Static and class methods and plain class attributes
    are left alone.
    """
    members: dict[str, Any] = {}
    for klass in cls.__mro__:
        if klass in _NOT_INTERFACES:
            continue
        for name in vars(klass):
            if name in members or name in routed or name in _KEPT_ON_PROXY:
                continue
            attr = inspect.getattr_static(cls, name)
            if isinstance(attr, (property, functools.cached_property)):
                members[name] = _forwarding_property(name)
            elif inspect.isfunction(attr):
                members[name] = _forwarding_method(name, attr)
    return members


def _implements(cls: type, iface: type) -> bool:
    if _is_protocol(iface):
        operations, properties = interface_members((iface,))
        return all(hasattr(cls, name) for name in (*operations, *properties))
    return issubclass(cls, iface)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class ProxyFactory:
    """Wraps targets so that their calls run through interception chains.

    Usage::

        registry = AspectRegistry()
        registry.register(timing_aspect("shop..*Service.*"))
        factory = ProxyFactory(registry)

        service = factory.wrap(OrderService())
        service.create(order)   # advised
    """

    def __init__(
        self,
        registry: AspectRegistry,
        *,
        wrap_target_failures: bool = False,
        default_strategy: ProxyStrategy | str = ProxyStrategy.AUTO,
        chains: ChainBuilder | None = None,
    ) -> None:
        self._registry = registry
        self._chains = chains if chains is not None else ChainBuilder(registry)
        self._wrap_target_failures = wrap_target_failures
        self._default_strategy = ProxyStrategy(default_strategy)

    @classmethod
    def from_config(cls, registry: AspectRegistry, config: Config) -> ProxyFactory:
        """Create a factory from the ``interweave.aop`` configuration section."""
        props = config.bind(AopProperties)
        return cls(
            registry,
            wrap_target_failures=props.wrap_target_failures,
            default_strategy=props.proxy_strategy,
        )

    @property
    def chains(self) -> ChainBuilder:
        return self._chains

    @property
    def wrap_target_failures(self) -> bool:
        return self._wrap_target_failures

    @property
    def default_strategy(self) -> ProxyStrategy:
        return self._default_strategy

    def wrap(
        self,
        target: Any,
        *,
        interface: type | tuple[type, ...] | None = None,
        prefix: str | None = None,
        strategy: ProxyStrategy | str | None = None,
    ) -> Any:
        """Return a proxy for *target* whose operations run through their chains.

        Args:
            target: The object to weave.  It is not modified.
            interface: Interface(s) the proxy should expose; forces the
                interface strategy.
            prefix: Replaces ``module.Class`` in the qualified names that
                ``exec(...)`` selectors see.  Without it the names are
                ``module.Class.method``, so a pattern such as
                ``*Service.*`` matches nothing because ``*`` stops at
                dots; write ``..*Service.*`` or pass ``prefix="OrderService"``.
            strategy: Overrides the factory's default strategy.

        Raises:
            NonInterceptable: if the target or a matched operation cannot
                be proxied with the selected strategy.
        """
        if target is None or isinstance(target, type):
            raise NonInterceptable(f"cannot weave {target!r}: expected an instance")
        if is_proxy(target):
            raise NonInterceptable("target is already woven", target=type_name_of(type(target)))

        cls = type(target)
        chosen = ProxyStrategy(strategy) if strategy is not None else self._default_strategy

        if interface is not None:
            interfaces = interface if isinstance(interface, tuple) else (interface,)
            for iface in interfaces:
                if not _implements(cls, iface):
                    raise NonInterceptable(
                        f"{cls.__name__} does not implement {iface.__name__}", target=type_name_of(cls)
                    )
            if chosen is ProxyStrategy.DELEGATE:
                raise NonInterceptable("an explicit interface requires the interface strategy")
            chosen = ProxyStrategy.INTERFACE
        elif chosen is ProxyStrategy.DELEGATE:
            interfaces = ()
        else:
            interfaces = find_interfaces(cls)
            if not interfaces and chosen is ProxyStrategy.INTERFACE:
                raise NonInterceptable(
                    f"{cls.__name__} exposes no abstract or Protocol interface", target=type_name_of(cls)
                )
            chosen = ProxyStrategy.INTERFACE if interfaces else ProxyStrategy.DELEGATE

        if chosen is ProxyStrategy.INTERFACE:
            proxy = self._interface_proxy(target, interfaces, prefix)
        else:
            proxy = self._delegate_proxy(target, prefix)

        logger.debug("Wove %s using the %s strategy", type_name_of(cls), chosen)
        return proxy

    # -- strategies -----------------------------------------------------------

    def _interface_proxy(self, target: Any, interfaces: tuple[type, ...], prefix: str | None) -> Any:
        cls = type(target)
        operations, properties = interface_members(interfaces)
        ns: dict[str, Any] = {}
        for name, declared in operations.items():
            impl = inspect.getattr_static(cls, name, declared)
            if not inspect.isfunction(impl):
                impl = declared
            descriptor = describe(cls, name, impl, prefix=prefix)
            ns[name] = self._routing_method(descriptor, impl)
        for name in properties:
            ns[name] = _forwarding_property(name)
        for iface in interfaces:
            for name, member in forwarded_members(iface, ns).items():
                if hasattr(cls, name):
                    ns.setdefault(name, member)

        names = "".join(i.__name__ for i in interfaces)
        return self._instantiate(f"{names}Proxy", interfaces, ns, target, ProxyStrategy.INTERFACE)

    def _delegate_proxy(self, target: Any, prefix: str | None) -> Any:
        cls = type(target)
        if getattr(cls, "__final__", False):
            raise NonInterceptable(f"{cls.__name__} is final and cannot be subclassed", target=type_name_of(cls))

        ns: dict[str, Any] = {}
        for name, fn in public_operations(cls).items():
            descriptor = describe(cls, name, fn, prefix=prefix)
            if descriptor.is_final:
                if not self._chains.chain_for(descriptor).is_empty:
                    raise _final_violation(descriptor)
                ns[name] = self._final_method(descriptor, fn)
                continue
            ns[name] = self._routing_method(descriptor, fn)
        ns.update(forwarded_members(cls, ns))

        def __getattr__(proxy: Any, attr: str) -> Any:
            return getattr(_target(proxy), attr)

        def __setattr__(proxy: Any, attr: str, value: Any) -> None:
            setattr(_target(proxy), attr, value)

        def __delattr__(proxy: Any, attr: str) -> None:
            delattr(_target(proxy), attr)

        ns.update(__getattr__=__getattr__, __setattr__=__setattr__, __delattr__=__delattr__)
        return self._instantiate(f"{cls.__name__}Proxy", (cls,), ns, target, ProxyStrategy.DELEGATE)

    @staticmethod
    def _instantiate(
        name: str, bases: tuple[type, ...], ns: dict[str, Any], target: Any, strategy: ProxyStrategy
    ) -> Any:
        def __repr__(proxy: Any) -> str:
            return f"<{strategy} proxy of {_target(proxy)!r}>"

        ns.setdefault("__repr__", __repr__)
        ns[PROXY_STRATEGY_ATTR] = strategy
        ns["__module__"] = __name__
        try:
            proxy_cls = types.new_class(name, bases, exec_body=lambda body: body.update(ns))
            proxy = object.__new__(proxy_cls)
        except TypeError as exc:
            raise NonInterceptable(
                f"cannot create a {strategy} proxy for {type(target).__name__}: {exc}",
                target=type_name_of(type(target)),
            ) from exc
        object.__setattr__(proxy, PROXY_TARGET_ATTR, target)
        return proxy

    def _routing_method(self, descriptor: OperationDescriptor, fn: Callable[..., Any]) -> Callable[..., Any]:
        chains = self._chains
        wrap = self._wrap_target_failures
        name = descriptor.name

        if descriptor.is_async:

            @functools.wraps(fn)
            async def async_method(proxy: Any, *args: Any, **kwargs: Any) -> Any:
                target = _target(proxy)
                chain = chains.chain_for(descriptor)
                return await chain.invoke_async(
                    target, getattr(target, name), args, kwargs, wrap_target_failures=wrap
                )

            async_method.__dict__.pop("__isabstractmethod__", None)
            return async_method

        @functools.wraps(fn)
        def method(proxy: Any, *args: Any, **kwargs: Any) -> Any:
            target = _target(proxy)
            chain = chains.chain_for(descriptor)
            return chain.invoke(target, getattr(target, name), args, kwargs, wrap_target_failures=wrap)

        method.__dict__.pop("__isabstractmethod__", None)
        return method

    def _final_method(self, descriptor: OperationDescriptor, fn: Callable[..., Any]) -> Callable[..., Any]:
        chains = self._chains
        name = descriptor.name

        @functools.wraps(fn)
        def method(proxy: Any, *args: Any, **kwargs: Any) -> Any:
            # Advice registered after wrapping may start to match.
            if not chains.chain_for(descriptor).is_empty:
                raise _final_violation(descriptor)
            return getattr(_target(proxy), name)(*args, **kwargs)

        return method


def _final_violation(descriptor: OperationDescriptor) -> NonInterceptable:
    return NonInterceptable(
        f"{descriptor.qualified_name} is final and cannot be intercepted",
        target=descriptor.declaring_type,
        operation=descriptor.name,
    )


def _forwarding_method(name: str, fn: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(fn)
    def method(proxy: Any, *args: Any, **kwargs: Any) -> Any:
        return getattr(_target(proxy), name)(*args, **kwargs)

    method.__dict__.pop("__isabstractmethod__", None)
    return method


def _forwarding_property(name: str) -> property:
    return property(lambda proxy: getattr(_target(proxy), name))
