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
"""Interception chains: composing matched advice around one operation.

Every binding is a link that wraps the rest of the chain; the innermost
link calls the real implementation.  ``before``, ``after``,
``after_returning`` and ``after_throwing`` behave as ``around`` links that
always proceed:

* before:          body, then proceed (a failing body skips the rest)
* after_returning: proceed, then body on success only
* after_throwing:  proceed, then body on failure only; a non-None return
  value (or ``jp.recover(value)``, which can also substitute None) becomes
  the call's result, and a raised exception replaces the failure
* after:           proceed, then body on every path

Failures raised by an advice body are wrapped in :class:`AdviceFailure`,
except exceptions that are already Interweave exceptions, cancellation
signals, the failure being propagated, or a replacement raised while
handling a failure (``after_throwing``, or ``around`` after ``proceed``
failed).  Target failures propagate unchanged unless target wrapping is
enabled.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from interweave.aop.registry import AdviceBinding, AspectRegistry, RegistrySnapshot
from interweave.aop.types import AdviceKind, JoinPoint, OperationDescriptor
from interweave.kernel.exceptions import AdviceFailure, InterweaveException, TargetFailure

logger = logging.getLogger(__name__)

_AFTER_KINDS = (AdviceKind.AFTER_RETURNING, AdviceKind.AFTER)


def _passes_through(exc: BaseException, jp: JoinPoint, handling: list[BaseException]) -> bool:
    if isinstance(exc, InterweaveException) or not isinstance(exc, Exception):
        return True
    if exc is jp.exception:
        return True
    return bool(handling)


def _advice_failure(binding: AdviceBinding, jp: JoinPoint, exc: BaseException) -> AdviceFailure:
    return AdviceFailure(binding.aspect_name, str(binding.kind), jp.qualified_name, exc)


def _enter_body(binding: AdviceBinding, jp: JoinPoint) -> Any:
    # Only around bodies may proceed; others must not see an enclosing link's proceed.
    previous = jp._proceed
    if binding.kind is not AdviceKind.AROUND:
        jp._proceed = None
    return previous


def _target_failure(jp: JoinPoint, exc: Exception, wrap: bool) -> BaseException:
    if wrap and not isinstance(exc, InterweaveException):
        return TargetFailure(jp.qualified_name, exc)
    return exc


def _recovered(jp: JoinPoint, exc: BaseException, returned: Any) -> bool:
    # Cancellation signals are never replaced.
    substituted = jp._recovered or returned is not None
    jp._recovered = False
    if not substituted or not isinstance(exc, Exception):
        return False
    if returned is not None:
        jp.return_value = returned
    jp.exception = None
    return True


@dataclass(frozen=True)
class InterceptionChain:
    """The ordered advice for one operation, built against one registry generation.

    Chains are immutable and safe to share between threads; every call gets
    its own :class:`JoinPoint`.
    """

    descriptor: OperationDescriptor
    bindings: tuple[AdviceBinding, ...]
    generation: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.bindings

    # -- sync -----------------------------------------------------------------

    def invoke(
        self,
        target: Any,
        fn: Callable[..., Any],
        args: tuple,
        kwargs: dict[str, Any],
        *,
        wrap_target_failures: bool = False,
    ) -> Any:
        """Run *fn* (the real implementation) through the chain."""
        jp = JoinPoint(descriptor=self.descriptor, target=target, args=args, kwargs=dict(kwargs))
        return self._run(0, jp, fn, wrap_target_failures)

    def _run(self, i: int, jp: JoinPoint, fn: Callable[..., Any], wrap: bool) -> Any:
        if i == len(self.bindings):
            try:
                return fn(*jp.args, **jp.kwargs)
            except Exception as exc:
                failure = _target_failure(jp, exc, wrap)
                if failure is exc:
                    raise
                raise failure from exc

        binding = self.bindings[i]
        kind = binding.kind

        if kind is AdviceKind.BEFORE:
            self._body(binding, jp, [])
            return self._run(i + 1, jp, fn, wrap)

        if kind is AdviceKind.AROUND:
            handling: list[BaseException] = []

            def proceed() -> Any:
                try:
                    result = self._run(i + 1, jp, fn, wrap)
                except BaseException as exc:
                    handling.append(exc)
                    raise
                jp.exception = None
                return result

            previous = jp._proceed
            jp._proceed = proceed
            try:
                return self._body(binding, jp, handling)
            finally:
                jp._proceed = previous

        try:
            result = self._run(i + 1, jp, fn, wrap)
        except BaseException as exc:
            jp.exception = exc
            if kind is AdviceKind.AFTER_THROWING:
                jp._recovered = False
                returned = self._body(binding, jp, [exc])
                if _recovered(jp, exc, returned):
                    return jp.return_value
            elif kind is AdviceKind.AFTER:
                self._body(binding, jp, [])
            raise

        jp.exception = None
        jp.return_value = result
        if kind in _AFTER_KINDS:
            self._body(binding, jp, [])
        return result

    @staticmethod
    def _body(binding: AdviceBinding, jp: JoinPoint, handling: list[BaseException]) -> Any:
        previous = _enter_body(binding, jp)
        try:
            result = binding.handler(jp)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError(f"async advice cannot run on synchronous operation {jp.qualified_name}")
            return result
        except BaseException as exc:
            if _passes_through(exc, jp, handling):
                raise
            raise _advice_failure(binding, jp, exc) from exc
        finally:
            jp._proceed = previous

    # -- async ----------------------------------------------------------------

    async def invoke_async(
        self,
        target: Any,
        fn: Callable[..., Any],
        args: tuple,
        kwargs: dict[str, Any],
        *,
        wrap_target_failures: bool = False,
    ) -> Any:
        """Await *fn* (a coroutine function) through the chain.

        Advice bodies may be sync or async; awaitable results are awaited.
        """
        jp = JoinPoint(descriptor=self.descriptor, target=target, args=args, kwargs=dict(kwargs))
        return await self._run_async(0, jp, fn, wrap_target_failures)

    async def _run_async(self, i: int, jp: JoinPoint, fn: Callable[..., Any], wrap: bool) -> Any:
        if i == len(self.bindings):
            try:
                return await fn(*jp.args, **jp.kwargs)
            except Exception as exc:
                failure = _target_failure(jp, exc, wrap)
                if failure is exc:
                    raise
                raise failure from exc

        binding = self.bindings[i]
        kind = binding.kind

        if kind is AdviceKind.BEFORE:
            await self._body_async(binding, jp, [])
            return await self._run_async(i + 1, jp, fn, wrap)

        if kind is AdviceKind.AROUND:
            handling: list[BaseException] = []

            async def proceed() -> Any:
                try:
                    result = await self._run_async(i + 1, jp, fn, wrap)
                except BaseException as exc:
                    handling.append(exc)
                    raise
                jp.exception = None
                return result

            previous = jp._proceed
            jp._proceed = proceed
            try:
                return await self._body_async(binding, jp, handling)
            finally:
                jp._proceed = previous

        try:
            result = await self._run_async(i + 1, jp, fn, wrap)
        except BaseException as exc:
            jp.exception = exc
            if kind is AdviceKind.AFTER_THROWING:
                jp._recovered = False
                returned = await self._body_async(binding, jp, [exc])
                if _recovered(jp, exc, returned):
                    return jp.return_value
            elif kind is AdviceKind.AFTER:
                await self._body_async(binding, jp, [])
            raise

        jp.exception = None
        jp.return_value = result
        if kind in _AFTER_KINDS:
            await self._body_async(binding, jp, [])
        return result

    @staticmethod
    async def _body_async(binding: AdviceBinding, jp: JoinPoint, handling: list[BaseException]) -> Any:
        previous = _enter_body(binding, jp)
        try:
            result = binding.handler(jp)
            if inspect.isawaitable(result):
                result = await result
            return result
        except BaseException as exc:
            if _passes_through(exc, jp, handling):
                raise
            raise _advice_failure(binding, jp, exc) from exc
        finally:
            jp._proceed = previous


class ChainBuilder:
    """Builds and caches one :class:`InterceptionChain` per operation.

    A cached chain is reused while the registry generation is unchanged;
    any register/unregister bumps the generation and the next lookup
    rebuilds from the new snapshot.  Chains are immutable, so a reader
    sees either the old or the new chain, never a partial one.
    """

    def __init__(self, registry: AspectRegistry) -> None:
        self._registry = registry
        self._cache: dict[OperationDescriptor, InterceptionChain] = {}

    @property
    def registry(self) -> AspectRegistry:
        return self._registry

    def build(self, descriptor: OperationDescriptor, snapshot: RegistrySnapshot | None = None) -> InterceptionChain:
        """Build a fresh chain for *descriptor* (no caching)."""
        snap = snapshot if snapshot is not None else self._registry.snapshot()
        bindings = tuple(b for b in snap.bindings if b.matches(descriptor))
        logger.debug(
            "Built chain for %s: %d binding(s) at generation %d",
            descriptor.qualified_name,
            len(bindings),
            snap.generation,
        )
        return InterceptionChain(descriptor=descriptor, bindings=bindings, generation=snap.generation)

    def chain_for(self, descriptor: OperationDescriptor) -> InterceptionChain:
        """Return the cached chain for *descriptor*, rebuilding if stale."""
        snap = self._registry.snapshot()
        cached = self._cache.get(descriptor)
        if cached is not None and cached.generation == snap.generation:
            return cached
        chain = self.build(descriptor, snap)
        self._cache[descriptor] = chain
        return chain

    def invalidate(self) -> None:
        self._cache = {}
