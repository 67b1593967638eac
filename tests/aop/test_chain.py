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
"""Tests for InterceptionChain and ChainBuilder: link semantics and caching."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from interweave.aop.chain import ChainBuilder
from interweave.aop.registry import AdviceBinding, Aspect, AspectRegistry
from interweave.aop.types import AdviceKind, JoinPoint, OperationDescriptor
from interweave.kernel.exceptions import AdviceFailure, InterweaveException, TargetFailure

OP = OperationDescriptor("svc.Calc.add", "add", "svc.Calc", ("int", "int"), "int")
ASYNC_OP = OperationDescriptor("svc.Calc.fetch", "fetch", "svc.Calc", (), "int", is_async=True)


class _Halt(BaseException):
    """Stands in for a cancellation signal."""


def _registry(*aspects: Aspect) -> AspectRegistry:
    registry = AspectRegistry()
    for a in aspects:
        registry.register(a)
    return registry


def _aspect(name: str, *bindings: tuple[AdviceKind, Any], order: int = 0, pointcut: str = "svc.Calc.*") -> Aspect:
    return Aspect(name, order=order, bindings=tuple(AdviceBinding(k, pointcut, h) for k, h in bindings))


def _invoke(registry: AspectRegistry, fn: Any, *args: Any, wrap: bool = False, **kwargs: Any) -> Any:
    chain = ChainBuilder(registry).build(OP)
    return chain.invoke(None, fn, args, kwargs, wrap_target_failures=wrap)


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


class TestChainOrdering:
    def test_empty_chain_calls_target(self) -> None:
        assert _invoke(_registry(), lambda a, b: a + b, 1, 2) == 3

    def test_before_and_around_nest_by_priority(self) -> None:
        calls: list[str] = []

        def around_body(jp: JoinPoint) -> Any:
            calls.append("around-pre")
            result = jp.proceed()
            calls.append("around-post")
            return result

        def target(a: int, b: int) -> int:
            calls.append("target")
            return a + b

        registry = _registry(
            _aspect("outer", (AdviceKind.BEFORE, lambda jp: calls.append("before")), order=0),
            _aspect("inner", (AdviceKind.AROUND, around_body), order=10),
        )
        assert _invoke(registry, target, 40, 2) == 42
        assert calls == ["before", "around-pre", "target", "around-post"]

    def test_after_advice_unwinds_in_reverse(self) -> None:
        calls: list[str] = []
        registry = _registry(
            _aspect(
                "a",
                (AdviceKind.BEFORE, lambda jp: calls.append("a.before")),
                (AdviceKind.AFTER_RETURNING, lambda jp: calls.append("a.after_returning")),
                (AdviceKind.AFTER, lambda jp: calls.append("a.after")),
                order=0,
            ),
            _aspect(
                "b",
                (AdviceKind.BEFORE, lambda jp: calls.append("b.before")),
                (AdviceKind.AFTER_RETURNING, lambda jp: calls.append("b.after_returning")),
                order=5,
            ),
        )
        _invoke(registry, lambda a, b: calls.append("target"), 1, 2)
        assert calls == [
            "a.before",
            "b.before",
            "target",
            "b.after_returning",
            "a.after",
            "a.after_returning",
        ]

    def test_equal_priority_arounds_nest_in_registration_order(self) -> None:
        calls: list[str] = []

        def tagged(tag: str) -> Any:
            def body(jp: JoinPoint) -> Any:
                calls.append(f"{tag}-in")
                result = jp.proceed()
                calls.append(f"{tag}-out")
                return result

            return body

        registry = _registry(
            _aspect("first", (AdviceKind.AROUND, tagged("first"))),
            _aspect("second", (AdviceKind.AROUND, tagged("second"))),
        )
        _invoke(registry, lambda a, b: None, 1, 2)
        assert calls == ["first-in", "second-in", "second-out", "first-out"]

    def test_after_returning_sees_return_value(self) -> None:
        seen: list[Any] = []
        registry = _registry(_aspect("a", (AdviceKind.AFTER_RETURNING, lambda jp: seen.append(jp.return_value))))
        assert _invoke(registry, lambda a, b: a * b, 6, 7) == 42
        assert seen == [42]


# ---------------------------------------------------------------------------
# Around semantics
# ---------------------------------------------------------------------------


class TestAroundAdvice:
    def test_around_without_proceed_skips_target(self) -> None:
        called: list[str] = []
        registry = _registry(_aspect("cache", (AdviceKind.AROUND, lambda jp: "cached")))
        assert _invoke(registry, lambda a, b: called.append("target"), 1, 2) == "cached"
        assert called == []

    def test_around_can_replace_arguments(self) -> None:
        registry = _registry(_aspect("double", (AdviceKind.AROUND, lambda jp: jp.proceed(jp.args[0] * 2, jp.args[1]))))
        assert _invoke(registry, lambda a, b: a + b, 5, 1) == 11

    def test_around_can_replace_result(self) -> None:
        registry = _registry(_aspect("plus", (AdviceKind.AROUND, lambda jp: jp.proceed() + 100)))
        assert _invoke(registry, lambda a, b: a + b, 1, 2) == 103

    def test_around_can_recover_from_target_failure(self) -> None:
        def guard(jp: JoinPoint) -> Any:
            try:
                return jp.proceed()
            except ZeroDivisionError:
                return 0

        registry = _registry(_aspect("guard", (AdviceKind.AROUND, guard)))
        assert _invoke(registry, lambda a, b: a / b, 1, 0) == 0

    def test_proceed_outside_around_is_an_advice_failure(self) -> None:
        registry = _registry(_aspect("bad", (AdviceKind.BEFORE, lambda jp: jp.proceed())))
        with pytest.raises(AdviceFailure) as exc_info:
            _invoke(registry, lambda a, b: a + b, 1, 2)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_nested_before_cannot_reach_enclosing_proceed(self) -> None:
        registry = _registry(
            _aspect("outer", (AdviceKind.AROUND, lambda jp: jp.proceed()), order=0),
            _aspect("inner", (AdviceKind.BEFORE, lambda jp: jp.proceed()), order=1),
        )
        with pytest.raises(AdviceFailure) as exc_info:
            _invoke(registry, lambda a, b: a + b, 1, 2)
        assert isinstance(exc_info.value.__cause__, RuntimeError)


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailureHandling:
    def test_target_failure_propagates_unchanged(self) -> None:
        error = ValueError("boom")

        def target(a: int, b: int) -> int:
            raise error

        registry = _registry(_aspect("a", (AdviceKind.BEFORE, lambda jp: None)))
        with pytest.raises(ValueError) as exc_info:
            _invoke(registry, target, 1, 2)
        assert exc_info.value is error

    def test_target_failure_wrapped_when_enabled(self) -> None:
        def target(a: int, b: int) -> int:
            raise ValueError("boom")

        with pytest.raises(TargetFailure) as exc_info:
            _invoke(_registry(), target, 1, 2, wrap=True)
        assert exc_info.value.code == "TARGET_FAILURE"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_failing_before_skips_target_and_wraps(self) -> None:
        called: list[str] = []

        def deny(jp: JoinPoint) -> None:
            raise PermissionError("denied")

        registry = _registry(_aspect("security", (AdviceKind.BEFORE, deny)))
        with pytest.raises(AdviceFailure) as exc_info:
            _invoke(registry, lambda a, b: called.append("target"), 1, 2)
        assert called == []
        assert exc_info.value.context == {"aspect": "security", "kind": "before", "operation": "svc.Calc.add"}
        assert isinstance(exc_info.value.__cause__, PermissionError)

    def test_interweave_exceptions_pass_through(self) -> None:
        def veto(jp: JoinPoint) -> None:
            raise InterweaveException("vetoed", code="VETO")

        registry = _registry(_aspect("veto", (AdviceKind.BEFORE, veto)))
        with pytest.raises(InterweaveException) as exc_info:
            _invoke(registry, lambda a, b: a + b, 1, 2)
        assert exc_info.value.code == "VETO"

    def test_after_throwing_recovers_with_value(self) -> None:
        registry = _registry(_aspect("fallback", (AdviceKind.AFTER_THROWING, lambda jp: jp.recover(-1))))
        assert _invoke(registry, lambda a, b: a / b, 1, 0) == -1

    def test_after_throwing_returned_value_is_substituted(self) -> None:
        registry = _registry(_aspect("fallback", (AdviceKind.AFTER_THROWING, lambda jp: -1)))
        assert _invoke(registry, lambda a, b: a / b, 1, 0) == -1

    def test_recover_substitutes_none(self) -> None:
        registry = _registry(_aspect("fallback", (AdviceKind.AFTER_THROWING, lambda jp: jp.recover(None))))
        assert _invoke(registry, lambda a, b: a / b, 1, 0) is None

    def test_outer_advice_sees_no_exception_after_around_recovers(self) -> None:
        seen: list[BaseException | None] = []

        def swallow(jp: JoinPoint) -> Any:
            try:
                return jp.proceed()
            except ZeroDivisionError:
                return 0

        registry = _registry(
            _aspect(
                "outer",
                (AdviceKind.AFTER_RETURNING, lambda jp: seen.append(jp.exception)),
                (AdviceKind.AFTER, lambda jp: seen.append(jp.exception)),
                order=0,
            ),
            _aspect("swallow", (AdviceKind.AROUND, swallow), order=5),
            _aspect("inner", (AdviceKind.AFTER, lambda jp: None), order=10),
        )
        assert _invoke(registry, lambda a, b: a / b, 1, 0) == 0
        assert seen == [None, None]

    def test_outer_after_sees_no_exception_after_recovery(self) -> None:
        seen: list[Any] = []
        registry = _registry(
            _aspect("outer", (AdviceKind.AFTER, lambda jp: seen.append((jp.exception, jp.return_value))), order=0),
            _aspect("fallback", (AdviceKind.AFTER_THROWING, lambda jp: 7), order=10),
        )
        assert _invoke(registry, lambda a, b: a / b, 1, 0) == 7
        assert seen == [(None, 7)]

    def test_after_throwing_without_recover_rethrows_original(self) -> None:
        seen: list[BaseException | None] = []
        registry = _registry(_aspect("observe", (AdviceKind.AFTER_THROWING, lambda jp: seen.append(jp.exception))))
        with pytest.raises(ZeroDivisionError) as exc_info:
            _invoke(registry, lambda a, b: a / b, 1, 0)
        assert seen == [exc_info.value]

    def test_after_throwing_may_raise_replacement(self) -> None:
        def translate(jp: JoinPoint) -> None:
            raise ArithmeticError("translated") from jp.exception

        registry = _registry(_aspect("translate", (AdviceKind.AFTER_THROWING, translate)))
        with pytest.raises(ArithmeticError, match="translated") as exc_info:
            _invoke(registry, lambda a, b: a / b, 1, 0)
        assert not isinstance(exc_info.value, AdviceFailure)

    def test_after_throwing_skipped_on_success(self) -> None:
        seen: list[str] = []
        registry = _registry(_aspect("a", (AdviceKind.AFTER_THROWING, lambda jp: seen.append("x"))))
        assert _invoke(registry, lambda a, b: a + b, 1, 2) == 3
        assert seen == []

    def test_after_runs_on_failure_and_rethrows(self) -> None:
        seen: list[str] = []
        registry = _registry(_aspect("a", (AdviceKind.AFTER, lambda jp: seen.append(type(jp.exception).__name__))))
        with pytest.raises(ZeroDivisionError):
            _invoke(registry, lambda a, b: a / b, 1, 0)
        assert seen == ["ZeroDivisionError"]

    def test_failing_after_returning_is_wrapped(self) -> None:
        def broken(jp: JoinPoint) -> None:
            raise KeyError("k")

        registry = _registry(_aspect("a", (AdviceKind.AFTER_RETURNING, broken)))
        with pytest.raises(AdviceFailure) as exc_info:
            _invoke(registry, lambda a, b: a + b, 1, 2)
        assert exc_info.value.context["kind"] == "after_returning"

    def test_around_failure_before_proceed_is_wrapped(self) -> None:
        def broken(jp: JoinPoint) -> Any:
            raise KeyError("k")

        registry = _registry(_aspect("a", (AdviceKind.AROUND, broken)))
        with pytest.raises(AdviceFailure):
            _invoke(registry, lambda a, b: a + b, 1, 2)

    def test_around_replacement_after_failed_proceed_passes_through(self) -> None:
        def translate(jp: JoinPoint) -> Any:
            try:
                return jp.proceed()
            except ZeroDivisionError as exc:
                raise LookupError("translated") from exc

        registry = _registry(_aspect("a", (AdviceKind.AROUND, translate)))
        with pytest.raises(LookupError, match="translated"):
            _invoke(registry, lambda a, b: a / b, 1, 0)

    def test_recover_ignored_for_cancellation(self) -> None:
        def target(a: int, b: int) -> int:
            raise _Halt

        registry = _registry(_aspect("fallback", (AdviceKind.AFTER_THROWING, lambda jp: jp.recover(0))))
        with pytest.raises(_Halt):
            _invoke(registry, target, 1, 2)

    def test_async_body_on_sync_chain_is_rejected(self) -> None:
        async def body(jp: JoinPoint) -> None:
            pass

        registry = _registry(_aspect("a", (AdviceKind.BEFORE, body)))
        with pytest.raises(AdviceFailure) as exc_info:
            _invoke(registry, lambda a, b: a + b, 1, 2)
        assert isinstance(exc_info.value.__cause__, TypeError)


# ---------------------------------------------------------------------------
# Async chains
# ---------------------------------------------------------------------------


class TestAsyncChain:
    @pytest.mark.asyncio
    async def test_async_chain_awaits_bodies(self) -> None:
        calls: list[str] = []

        async def before_body(jp: JoinPoint) -> None:
            await asyncio.sleep(0)
            calls.append("before")

        async def around_body(jp: JoinPoint) -> Any:
            calls.append("around-pre")
            result = await jp.proceed()
            calls.append("around-post")
            return result * 2

        async def target() -> int:
            calls.append("target")
            return 21

        registry = _registry(
            _aspect("a", (AdviceKind.BEFORE, before_body), (AdviceKind.AFTER, lambda jp: calls.append("after"))),
            _aspect("b", (AdviceKind.AROUND, around_body), order=1),
        )
        chain = ChainBuilder(registry).build(ASYNC_OP)
        assert await chain.invoke_async(None, target, (), {}) == 42
        assert calls == ["before", "around-pre", "target", "around-post", "after"]

    @pytest.mark.asyncio
    async def test_sync_around_may_return_proceed_awaitable(self) -> None:
        async def target() -> int:
            return 7

        registry = _registry(_aspect("a", (AdviceKind.AROUND, lambda jp: jp.proceed())))
        chain = ChainBuilder(registry).build(ASYNC_OP)
        assert await chain.invoke_async(None, target, (), {}) == 7

    @pytest.mark.asyncio
    async def test_async_after_throwing_recovers(self) -> None:
        async def target() -> int:
            raise ValueError("boom")

        async def fallback(jp: JoinPoint) -> None:
            jp.recover(0)

        registry = _registry(_aspect("a", (AdviceKind.AFTER_THROWING, fallback)))
        chain = ChainBuilder(registry).build(ASYNC_OP)
        assert await chain.invoke_async(None, target, (), {}) == 0

    @pytest.mark.asyncio
    async def test_async_after_throwing_returned_value_is_substituted(self) -> None:
        async def target() -> int:
            raise ValueError("boom")

        async def fallback(jp: JoinPoint) -> int:
            return -1

        registry = _registry(_aspect("a", (AdviceKind.AFTER_THROWING, fallback)))
        chain = ChainBuilder(registry).build(ASYNC_OP)
        assert await chain.invoke_async(None, target, (), {}) == -1

    @pytest.mark.asyncio
    async def test_cancellation_passes_through_unwrapped(self) -> None:
        async def target() -> int:
            raise asyncio.CancelledError

        registry = _registry(
            _aspect("a", (AdviceKind.AFTER_THROWING, lambda jp: jp.recover(0))),
            _aspect("b", (AdviceKind.AFTER, lambda jp: None)),
        )
        chain = ChainBuilder(registry).build(ASYNC_OP)
        with pytest.raises(asyncio.CancelledError):
            await chain.invoke_async(None, target, (), {})

    @pytest.mark.asyncio
    async def test_async_advice_failure_is_wrapped(self) -> None:
        async def target() -> int:
            return 1

        async def broken(jp: JoinPoint) -> None:
            raise RuntimeError("broken")

        registry = _registry(_aspect("a", (AdviceKind.BEFORE, broken)))
        chain = ChainBuilder(registry).build(ASYNC_OP)
        with pytest.raises(AdviceFailure):
            await chain.invoke_async(None, target, (), {})

    @pytest.mark.asyncio
    async def test_async_target_failure_wrapped_when_enabled(self) -> None:
        async def target() -> int:
            raise ValueError("boom")

        chain = ChainBuilder(_registry()).build(ASYNC_OP)
        with pytest.raises(TargetFailure):
            await chain.invoke_async(None, target, (), {}, wrap_target_failures=True)


# ---------------------------------------------------------------------------
# ChainBuilder caching
# ---------------------------------------------------------------------------


class TestChainBuilder:
    def test_build_is_idempotent(self) -> None:
        registry = _registry(_aspect("a", (AdviceKind.BEFORE, lambda jp: None)))
        builder = ChainBuilder(registry)
        assert builder.build(OP) == builder.build(OP)

    def test_build_selects_only_matching_bindings(self) -> None:
        registry = _registry(
            _aspect("match", (AdviceKind.BEFORE, lambda jp: None)),
            _aspect("other", (AdviceKind.BEFORE, lambda jp: None), pointcut="other.*.*"),
        )
        chain = ChainBuilder(registry).build(OP)
        assert [b.aspect_name for b in chain.bindings] == ["match"]
        assert not chain.is_empty

    def test_chain_for_reuses_cached_chain(self) -> None:
        builder = ChainBuilder(_registry(_aspect("a", (AdviceKind.BEFORE, lambda jp: None))))
        assert builder.chain_for(OP) is builder.chain_for(OP)

    def test_registry_change_rebuilds_chain(self) -> None:
        registry = _registry()
        builder = ChainBuilder(registry)
        stale = builder.chain_for(OP)
        assert stale.is_empty

        registry.register(_aspect("a", (AdviceKind.BEFORE, lambda jp: None)))
        fresh = builder.chain_for(OP)
        assert fresh is not stale
        assert fresh.generation == registry.generation
        assert len(fresh.bindings) == 1

    def test_invalidate_drops_cache(self) -> None:
        builder = ChainBuilder(_registry(_aspect("a", (AdviceKind.BEFORE, lambda jp: None))))
        first = builder.chain_for(OP)
        builder.invalidate()
        second = builder.chain_for(OP)
        assert second is not first
        assert second == first

    def test_chain_built_before_change_is_unaffected(self) -> None:
        calls: list[str] = []
        registry = _registry(_aspect("a", (AdviceKind.BEFORE, lambda jp: calls.append("a"))))
        chain = ChainBuilder(registry).build(OP)
        registry.unregister("a")
        chain.invoke(None, lambda a, b: None, (1, 2), {})
        assert calls == ["a"]
