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
"""TransactionProperties — transaction manager settings bound from configuration."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from pyweave.core.config import config_properties


class SynchronizationPolicy(enum.Enum):
    """When the manager activates synchronization callbacks."""

    ALWAYS = "always"
    ON_ACTUAL_TRANSACTION = "on_actual_transaction"
    NEVER = "never"


@config_properties(prefix="pyweave.transaction")
@dataclass
class TransactionProperties:
    """Settings for :class:`~pyweave.transaction.manager.TransactionManager`.

    Attributes:
        default_timeout: Seconds applied when a definition uses ``TIMEOUT_DEFAULT``.
        nested_transaction_allowed: Whether NESTED propagation is permitted.
        validate_existing_transaction: Check isolation/read-only compatibility
            when joining an existing unit of work.
        global_rollback_on_participation_failure: A failing participant marks
            the whole unit of work rollback-only.
        fail_early_on_global_rollback_only: Raise ``UnexpectedRollbackException``
            at the first join point that sees a rollback-only unit, instead of
            only at the outermost one.
        rollback_on_commit_failure: Roll back after a failed physical commit.
        synchronization: When callbacks are activated; bound from
            ``always``, ``on_actual_transaction`` or ``never``.
    """

    default_timeout: int = -1
    nested_transaction_allowed: bool = True
    validate_existing_transaction: bool = False
    global_rollback_on_participation_failure: bool = True
    fail_early_on_global_rollback_only: bool = False
    rollback_on_commit_failure: bool = False
    synchronization: SynchronizationPolicy = SynchronizationPolicy.ALWAYS
