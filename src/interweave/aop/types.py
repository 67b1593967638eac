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
"""AOP core types: OperationDescriptor, AdviceKind and JoinPoint."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class AdviceKind(StrEnum):
    """When an advice body runs relative to the intercepted operation."""

    BEFORE = "before"
    AFTER = "after"
    AFTER_RETURNING = "after_returning"
    AFTER_THROWING = "after_throwing"
    AROUND = "around"


@dataclass(frozen=True)
class OperationDescriptor:
    """Static description of one interceptable operation.

    Descriptors are hashable and immutable; the chain cache is keyed on them.

    Attributes:
        qualified_name: Dotted name used by ``exec(...)`` selectors,
            e.g. ``"shop.OrderService.create"``.
        name: Bare operation (method) name.
        declaring_type: Dotted name of the owning type, e.g. ``"shop.OrderService"``.
        parameter_types: Type names of the declared parameters (``self`` excluded).
        return_type: Type name of the declared return value.
        markers: Tags attached with :func:`~interweave.aop.decorators.marker`.
        is_async: Whether the operation is a coroutine function.
        is_final: Whether the operation is marked ``@typing.final``.
    """

    qualified_name: str
    name: str
    declaring_type: str
    parameter_types: tuple[str, ...] = ()
    return_type: str = "Any"
    markers: frozenset[str] = frozenset()
    is_async: bool = False
    is_final: bool = False


@dataclass
class JoinPoint:
    """Invocation context handed to advice bodies, one per call.

    Attributes:
        descriptor: The operation being intercepted.
        target: The object whose method is being intercepted.
        args: Positional arguments passed to the method.
        kwargs: Keyword arguments passed to the method.
        return_value: The return value (set after method execution).
        exception: Any exception raised during execution.
    """

    descriptor: OperationDescriptor
    target: Any
    args: tuple
    kwargs: dict[str, Any]
    return_value: Any = None
    exception: BaseException | None = None
    _proceed: Callable[[], Any] | None = field(default=None, repr=False)
    _recovered: bool = field(default=False, repr=False)

    @property
    def method_name(self) -> str:
        return self.descriptor.name

    @property
    def qualified_name(self) -> str:
        return self.descriptor.qualified_name

    def proceed(self, *args: Any, **kwargs: Any) -> Any:
        """Continue with the rest of the chain and return its result.

        Only available inside ``around`` advice.  Passing any arguments
        replaces :attr:`args` / :attr:`kwargs` for the remaining links and
        the target; calling with none reuses the current ones.  Inside an
        async chain the result is awaitable.
        """
        if self._proceed is None:
            raise RuntimeError(f"proceed() is only available inside around advice ({self.qualified_name})")
        if args or kwargs:
            self.args = args
            self.kwargs = kwargs
        return self._proceed()

    def recover(self, value: Any) -> None:
        """Substitute *value* for the current failure.

        Meant for ``after_throwing`` advice: the failure is dropped and the
        call returns *value*.  Returning a non-None value from the body has
        the same effect; ``recover`` is the way to substitute ``None``.
        Cancellation-type signals (``BaseException`` that is not an
        ``Exception``) are never suppressed.
        """
        self.return_value = value
        self._recovered = True
