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
"""structlog setup for PyWeave, with transaction state merged into every event."""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any

import structlog

from pyweave.core.config import Config, config_properties
from pyweave.transaction.context import TransactionContext


@config_properties(prefix="pyweave.logging")
@dataclass
class LoggingProperties:
    """Output settings; per-logger levels live under ``pyweave.logging.level``."""

    format: str = "console"
    transaction_context: bool = True


def add_transaction_context(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Processor adding the current unit of work's name and flags.

    Events logged outside synchronization scope are left untouched.
    """
    if not TransactionContext.is_synchronization_active():
        return event_dict
    name = TransactionContext.get_current_transaction_name()
    if name is not None:
        event_dict.setdefault("tx_name", name)
    event_dict.setdefault("tx_active", TransactionContext.is_actual_transaction_active())
    if TransactionContext.is_current_transaction_read_only():
        event_dict.setdefault("tx_read_only", True)
    return event_dict


class StructlogAdapter:
    """Configures structlog on top of stdlib logging from a :class:`Config`.

    ``pyweave.logging.level.root`` sets the root level; any other key under
    ``pyweave.logging.level`` names a logger and its level.
    """

    def __init__(self) -> None:
        self.properties = LoggingProperties()
        self.root_level = "INFO"
        self.module_levels: dict[str, str] = {}

    def configure(self, config: Config) -> None:
        self.properties = config.bind(LoggingProperties)
        self.properties.format = str(self.properties.format).lower()
        levels = {str(k): str(v).upper() for k, v in config.get_section("pyweave.logging.level").items()}
        self.root_level = levels.pop("root", "INFO")
        self.module_levels = levels

        self._setup_structlog()
        for name, level in self.module_levels.items():
            self.set_level(name, level)

    def get_logger(self, name: str) -> Any:
        return structlog.get_logger(name)

    def set_level(self, name: str, level: str) -> None:
        logging.getLogger(name).setLevel(getattr(logging, level.upper(), logging.INFO))

    def processors(self) -> list[structlog.types.Processor]:
        chain: list[structlog.types.Processor] = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
        ]
        if self.properties.transaction_context:
            chain.append(add_transaction_context)
        chain += [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]
        if self.properties.format == "json":
            chain.append(structlog.processors.JSONRenderer())
        else:
            chain.append(structlog.dev.ConsoleRenderer())
        return chain

    def _setup_structlog(self) -> None:
        structlog.configure(
            processors=self.processors(),
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )
        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=getattr(logging, self.root_level, logging.INFO),
            force=True,
        )


def configure_logging(config: Config) -> StructlogAdapter:
    """Configure structlog from *config* and return the adapter."""
    adapter = StructlogAdapter()
    adapter.configure(config)
    return adapter
