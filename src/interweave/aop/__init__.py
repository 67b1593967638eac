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
"""Aspect-Oriented Programming support for Interweave."""

from interweave.aop.chain import ChainBuilder, InterceptionChain
from interweave.aop.context import AopContext
from interweave.aop.decorators import (
    HIGHEST_PRECEDENCE,
    LOWEST_PRECEDENCE,
    after,
    after_returning,
    after_throwing,
    around,
    aspect,
    before,
    marker,
    order,
)
from interweave.aop.introspection import describe, describe_all
from interweave.aop.properties import AopProperties
from interweave.aop.proxy import ProxyFactory, ProxyStrategy, is_proxy, strategy_of, unwrap
from interweave.aop.registry import AdviceBinding, Aspect, AspectRegistry, RegistrySnapshot
from interweave.aop.selector import (
    AllOf,
    AnyOf,
    Args,
    Execution,
    Marker,
    Not,
    Returns,
    Selector,
    Within,
    matches_pointcut,
    parse_selector,
)
from interweave.aop.types import AdviceKind, JoinPoint, OperationDescriptor

__all__ = [
    # Selectors
    "AllOf",
    "AnyOf",
    "Args",
    "Execution",
    "Marker",
    "Not",
    "Returns",
    "Selector",
    "Within",
    "matches_pointcut",
    "parse_selector",
    # Registry
    "AdviceBinding",
    "Aspect",
    "AspectRegistry",
    "RegistrySnapshot",
    # Chains and proxies
    "AopContext",
    "AopProperties",
    "ChainBuilder",
    "InterceptionChain",
    "ProxyFactory",
    "ProxyStrategy",
    "describe",
    "describe_all",
    "is_proxy",
    "strategy_of",
    "unwrap",
    # Types
    "AdviceKind",
    "JoinPoint",
    "OperationDescriptor",
    # Decorators
    "HIGHEST_PRECEDENCE",
    "LOWEST_PRECEDENCE",
    "after",
    "after_returning",
    "after_throwing",
    "around",
    "aspect",
    "before",
    "marker",
    "order",
]
