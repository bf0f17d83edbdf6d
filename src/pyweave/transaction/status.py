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
"""Transaction handles: ResourceHolder, SuspendedResourcesHolder and TransactionStatus."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pyweave.transaction.definition import Isolation, TransactionDefinition
from pyweave.transaction.exceptions import (
    IllegalTransactionStateException,
    NestedTransactionNotSupportedException,
    driver_errors,
)
from pyweave.transaction.ports.outbound import ResourceDriverPort
from pyweave.transaction.context import TransactionContext
from pyweave.transaction.synchronization import TransactionSynchronization, trigger_flush


@dataclass(eq=False)
class ResourceHolder:
    """A physical unit of work as bound to the context store.

    ``rollback_only`` is the *global* flag: every participant that joined
    this unit sees it.
    """

    handle: Any
    definition: TransactionDefinition
    rollback_only: bool = False
    transaction_active: bool = True

    def __repr__(self) -> str:
        return f"ResourceHolder({self.handle!r}, rollback_only={self.rollback_only})"


@dataclass(eq=False)
class SuspendedResourcesHolder:
    """Snapshot of an outer unit of work taken at suspension; resumed exactly once."""

    suspended_resources: tuple[ResourceHolder, Any] | None = None
    suspended_synchronizations: list[TransactionSynchronization] | None = None
    name: str | None = None
    read_only: bool = False
    isolation_level: Isolation | None = None
    was_active: bool = False
    consumed: bool = field(default=False, repr=False)

    def consume(self) -> None:
        if self.consumed:
            raise IllegalTransactionStateException("Suspended resources have already been resumed")
        self.consumed = True


class TransactionStatus:
    """Handle for one ``get_transaction`` call, passed back to commit/rollback.

    Attributes:
        definition: The definition the handle was created for.
        transaction: The bound :class:`ResourceHolder`, or ``None`` for an
            empty handle (no real unit of work).
        new_transaction: Whether this handle began the unit of work.
        new_synchronization: Whether this handle activated synchronization.
        suspended_resources: Outer context to restore on completion.
    """

    def __init__(
        self,
        definition: TransactionDefinition,
        driver: ResourceDriverPort,
        transaction: ResourceHolder | None,
        new_transaction: bool,
        new_synchronization: bool,
        suspended_resources: SuspendedResourcesHolder | None = None,
        shadowed: ResourceHolder | None = None,
    ) -> None:
        self.definition = definition
        self.transaction = transaction
        self.new_transaction = new_transaction
        self.new_synchronization = new_synchronization
        self.suspended_resources = suspended_resources
        # Outer holder hidden by a NESTED unit begun without a savepoint.
        self.shadowed = shadowed
        self._driver = driver
        self._savepoint: Any = None
        self._rollback_only = False
        self._completed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def read_only(self) -> bool:
        return self.definition.read_only

    def has_transaction(self) -> bool:
        return self.transaction is not None

    def is_new_transaction(self) -> bool:
        return self.has_transaction() and self.new_transaction

    def has_savepoint(self) -> bool:
        return self._savepoint is not None

    @property
    def savepoint(self) -> Any:
        return self._savepoint

    def set_rollback_only(self) -> None:
        """Mark this handle so that commit turns into a rollback."""
        self._rollback_only = True

    def is_local_rollback_only(self) -> bool:
        return self._rollback_only

    def is_global_rollback_only(self) -> bool:
        return self.transaction is not None and self.transaction.rollback_only

    def is_rollback_only(self) -> bool:
        return self._rollback_only or self.is_global_rollback_only()

    def is_completed(self) -> bool:
        return self._completed

    def set_completed(self) -> None:
        self._completed = True

    def flush(self) -> None:
        """Ask registered synchronizations to flush pending work to the store.

        A no-op when synchronization is not active.
        """
        if TransactionContext.is_synchronization_active():
            trigger_flush(TransactionContext.get_synchronizations())

    # ------------------------------------------------------------------
    # Held savepoint (NESTED propagation)
    # ------------------------------------------------------------------

    def create_and_hold_savepoint(self) -> None:
        self._savepoint = self.create_savepoint()

    def rollback_to_held_savepoint(self) -> None:
        if self._savepoint is None:
            raise IllegalTransactionStateException(
                "Cannot roll back to savepoint - no savepoint associated with current transaction"
            )
        self.rollback_to_savepoint(self._savepoint)
        self.release_savepoint(self._savepoint)
        self._savepoint = None

    def release_held_savepoint(self) -> None:
        if self._savepoint is None:
            raise IllegalTransactionStateException(
                "Cannot release savepoint - no savepoint associated with current transaction"
            )
        self.release_savepoint(self._savepoint)
        self._savepoint = None

    # ------------------------------------------------------------------
    # Savepoint manager API
    # ------------------------------------------------------------------

    def create_savepoint(self) -> Any:
        """Create a savepoint in the current unit of work and return it."""
        holder = self._require_transaction("create savepoint")
        if not self._driver.supports_savepoints(holder.handle):
            raise NestedTransactionNotSupportedException(
                "Transaction resource does not support savepoints",
                code="TX_NO_SAVEPOINTS",
            )
        with driver_errors("create savepoint", NestedTransactionNotSupportedException):
            return self._driver.create_savepoint(holder.handle)

    def rollback_to_savepoint(self, savepoint: Any) -> None:
        holder = self._require_transaction("roll back to savepoint")
        with driver_errors("roll back to savepoint"):
            self._driver.rollback_to_savepoint(holder.handle, savepoint)
        # Rolling back to a savepoint clears rollback-only marks set after it.
        holder.rollback_only = False

    def release_savepoint(self, savepoint: Any) -> None:
        holder = self._require_transaction("release savepoint")
        with driver_errors("release savepoint"):
            self._driver.release_savepoint(holder.handle, savepoint)

    def _require_transaction(self, action: str) -> ResourceHolder:
        if self.transaction is None:
            raise NestedTransactionNotSupportedException(f"Cannot {action} - no transaction available")
        return self.transaction

    def __repr__(self) -> str:
        return (
            f"TransactionStatus(new={self.is_new_transaction()}, savepoint={self.has_savepoint()}, "
            f"suspended={self.suspended_resources is not None}, completed={self._completed})"
        )
