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
"""Transaction definitions — propagation, isolation, timeout and read-only settings."""

from __future__ import annotations

import enum
from dataclasses import dataclass

TIMEOUT_DEFAULT = -1


class Propagation(enum.Enum):
    """How a unit of work relates to one already bound to the current context."""

    REQUIRED = "REQUIRED"
    REQUIRES_NEW = "REQUIRES_NEW"
    NESTED = "NESTED"
    SUPPORTS = "SUPPORTS"
    NOT_SUPPORTED = "NOT_SUPPORTED"
    NEVER = "NEVER"
    MANDATORY = "MANDATORY"


class Isolation(enum.Enum):
    """Transaction isolation level."""

    DEFAULT = "DEFAULT"
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


@dataclass(frozen=True)
class TransactionDefinition:
    """Requested properties of a unit of work.

    Attributes:
        propagation: Relationship to an existing unit of work.
        isolation: Isolation level; ``DEFAULT`` leaves the driver's default.
        timeout: Seconds, or ``TIMEOUT_DEFAULT`` for the manager's default.
        read_only: Hint that the unit performs no writes.
        name: Label exposed through the context store and logs.
    """

    propagation: Propagation = Propagation.REQUIRED
    isolation: Isolation = Isolation.DEFAULT
    timeout: int = TIMEOUT_DEFAULT
    read_only: bool = False
    name: str | None = None

    def describe(self) -> str:
        parts = [self.propagation.value]
        if self.isolation is not Isolation.DEFAULT:
            parts.append(f"ISOLATION_{self.isolation.name}")
        if self.timeout != TIMEOUT_DEFAULT:
            parts.append(f"timeout_{self.timeout}")
        if self.read_only:
            parts.append("readOnly")
        return ",".join(parts)


DEFAULT_DEFINITION = TransactionDefinition()
