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
"""Tests for LoggingPort protocol and LoggingProperties."""

import logging
from typing import Any

import pytest

from interweave.core.config import Config
from interweave.logging.port import ConfigurableAdapter, LoggingPort, LoggingProperties, level_number


class TestLoggingPortProtocol:
    def test_conforming_class_is_instance(self):
        class FakeLogging:
            def configure(self, config: Any) -> None:
                pass

            def get_logger(self, name: str) -> Any:
                pass

            def set_level(self, name: str, level: str) -> None:
                pass

        assert isinstance(FakeLogging(), LoggingPort)

    def test_non_conforming_class_is_not_instance(self):
        class Partial:
            def get_logger(self, name: str) -> Any:
                pass

        assert not isinstance(Partial(), LoggingPort)


class TestLoggingProperties:
    def test_defaults(self):
        props = Config({}).bind(LoggingProperties)
        assert props.root_level == "INFO"
        assert props.format == "console"
        assert props.module_levels == {}

    def test_levels_split_root_and_modules(self):
        config = Config(
            {"interweave": {"logging": {"level": {"root": "warning", "interweave.aop": "debug"}, "format": "json"}}}
        )
        props = config.bind(LoggingProperties)
        assert props.root_level == "WARNING"
        assert props.module_levels == {"interweave.aop": "DEBUG"}
        assert props.format == "json"


class TestLevelNumber:
    def test_known_names_are_case_insensitive(self):
        assert level_number("debug") == logging.DEBUG
        assert level_number("WARNING") == logging.WARNING

    def test_unknown_name_falls_back_to_info(self):
        assert level_number("chatty") == logging.INFO


class TestConfigurableAdapter:
    def test_configure_binds_installs_then_applies_module_levels(self):
        installed: list[LoggingProperties] = []

        class Recording(ConfigurableAdapter):
            def get_logger(self, name: str) -> Any:
                return logging.getLogger(name)

            def _install(self, props: LoggingProperties) -> None:
                installed.append(props)

        adapter = Recording()
        adapter.configure(Config({"interweave": {"logging": {"level": {"shop.port": "error"}}}}))
        try:
            assert installed == [adapter.properties]
            assert logging.getLogger("shop.port").level == logging.ERROR
            assert isinstance(adapter, LoggingPort)
        finally:
            logging.getLogger("shop.port").setLevel(logging.NOTSET)

    def test_adapter_without_install_cannot_be_instantiated(self):
        class Incomplete(ConfigurableAdapter):
            def get_logger(self, name: str) -> Any:
                return logging.getLogger(name)

        with pytest.raises(TypeError):
            Incomplete()
