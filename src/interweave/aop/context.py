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
"""AopContext: the explicitly owned handle to one weaving engine."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import TracebackType
from typing import Any

from interweave.aop.chain import ChainBuilder
from interweave.aop.proxy import ProxyFactory, ProxyStrategy
from interweave.aop.registry import Aspect, AspectRegistry
from interweave.core.config import Config
from interweave.logging.port import LoggingPort

logger = logging.getLogger(__name__)


class AopContext:
    """Owns one :class:`AspectRegistry` and the :class:`ProxyFactory` fed by it.

    There is no process-wide default instance: create one at startup, pass
    it to whoever registers aspects or wraps targets, and stop it at
    shutdown.  Stopping removes every aspect, so proxies created earlier
    fall back to calling their targets directly.

    Usage::

        with AopContext(Config.from_file("interweave.yaml")) as aop:
            aop.register(logging_aspect('exec("shop..*Service.*")'))
            service = aop.wrap(OrderService())
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        aspects: Iterable[Aspect | Any] = (),
        logging_port: LoggingPort | None = None,
    ) -> None:
        self._config = config if config is not None else Config()
        self._registry = AspectRegistry()
        self._factory = ProxyFactory.from_config(self._registry, self._config)
        self._logging_port = logging_port
        self._pending = list(aspects)
        self._started = False

    @property
    def config(self) -> Config:
        return self._config

    @property
    def registry(self) -> AspectRegistry:
        return self._registry

    @property
    def proxy_factory(self) -> ProxyFactory:
        return self._factory

    @property
    def chains(self) -> ChainBuilder:
        return self._factory.chains

    @property
    def started(self) -> bool:
        return self._started

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> AopContext:
        """Configure logging (if a port was given) and register initial aspects."""
        if self._started:
            return self
        if self._logging_port is not None:
            self._logging_port.configure(self._config)
        for aspect in self._pending:
            self._registry.register(aspect)
        self._pending.clear()
        self._started = True
        logger.debug("AOP context started with %d aspect(s)", len(self._registry))
        return self

    def stop(self) -> None:
        """Remove every aspect and drop cached chains."""
        if not self._started:
            return
        self._registry.clear()
        self._factory.chains.invalidate()
        self._started = False
        logger.debug("AOP context stopped")

    def __enter__(self) -> AopContext:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    # -- registration and wrapping --------------------------------------------

    def register(self, aspect: Aspect | Any) -> Aspect:
        return self._registry.register(aspect)

    def unregister(self, name: str) -> Aspect | None:
        return self._registry.unregister(name)

    def wrap(
        self,
        target: Any,
        *,
        interface: type | tuple[type, ...] | None = None,
        prefix: str | None = None,
        strategy: ProxyStrategy | str | None = None,
    ) -> Any:
        return self._factory.wrap(target, interface=interface, prefix=prefix, strategy=strategy)
