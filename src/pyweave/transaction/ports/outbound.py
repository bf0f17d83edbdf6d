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
"""Outbound port for the resource driver orchestrated by the transaction manager.

The driver physically begins, commits and rolls back units of work (a database
connection, for example). The manager treats every call as fallible: any
exception that is not already a transaction error is translated into
:class:`~pyweave.transaction.exceptions.CannotCreateTransactionException`
(``begin``) or :class:`~pyweave.transaction.exceptions.TransactionSystemException`
(everything else), chained from the driver's own error.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pyweave.transaction.definition import TransactionDefinition


@runtime_checkable
class ResourceDriverPort(Protocol):
    """Port for the physical unit-of-work driver."""

    def begin(self, definition: TransactionDefinition) -> Any:
        """Begin a unit of work and return its opaque resource handle.

        ``definition.timeout`` is already resolved against the manager's
        default timeout.
        """
        ...

    def commit(self, handle: Any) -> None:
        """Commit the unit of work and release its resources."""
        ...

    def rollback(self, handle: Any) -> None:
        """Roll back the unit of work and release its resources."""
        ...

    def supports_savepoints(self, handle: Any) -> bool:
        """Return ``True`` if :meth:`create_savepoint` is available for *handle*."""
        ...

    def create_savepoint(self, handle: Any) -> Any:
        """Create a savepoint inside the unit of work and return its handle."""
        ...

    def rollback_to_savepoint(self, handle: Any, savepoint: Any) -> None:
        """Undo everything done since *savepoint*; the unit of work stays open."""
        ...

    def release_savepoint(self, handle: Any, savepoint: Any) -> None:
        """Discard *savepoint*, keeping its effects in the enclosing unit."""
        ...

    def suspend(self, handle: Any) -> Any:
        """Detach the unit of work from the current context; return opaque state."""
        ...

    def resume(self, suspended: Any) -> None:
        """Reattach a unit of work previously detached by :meth:`suspend`."""
        ...
