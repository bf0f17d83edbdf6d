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
"""In-memory resource driver."""

from __future__ import annotations

import copy
import itertools
import threading
from dataclasses import dataclass, field
from typing import Any

from pyweave.transaction.context import TransactionContext
from pyweave.transaction.definition import TransactionDefinition
from pyweave.transaction.status import ResourceHolder


@dataclass(eq=False)
class InMemoryTransaction:
    """Handle for one in-memory unit of work.

    Reads and writes go to a private deep copy of the store taken at begin; commit
    applies only the keys changed since then.
    """

    id: int
    definition: TransactionDefinition
    data: dict[str, Any]
    base: dict[str, Any] = field(default_factory=dict, repr=False)
    savepoints: list[int] = field(default_factory=list)
    snapshots: dict[int, dict[str, Any]] = field(default_factory=dict)
    open: bool = True

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        if self.definition.read_only:
            raise PermissionError(f"Unit of work {self.id} is read-only")
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class InMemoryResourceDriver:
    """Key/value store with transactional working copies and snapshot savepoints.

    Suitable for development and testing. Every driver call is appended to
    :attr:`journal` as ``(operation, transaction id)``. Setting
    ``failures[operation]`` to an exception makes that operation raise it
    once.

    :meth:`get`, :meth:`put` and :meth:`delete` act on the unit of work
    bound under this driver in the transaction context, or directly on the
    committed store when none is bound.
    """

    def __init__(self, *, savepoints: bool = True) -> None:
        self.store: dict[str, Any] = {}
        self.journal: list[tuple[str, int]] = []
        self.failures: dict[str, BaseException] = {}
        self._savepoints_enabled = savepoints
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # -- ResourceDriverPort ------------------------------------------------

    def begin(self, definition: TransactionDefinition) -> InMemoryTransaction:
        self._maybe_fail("begin")
        with self._lock:
            snapshot = copy.deepcopy(self.store)
        handle = InMemoryTransaction(next(self._ids), definition, copy.deepcopy(snapshot), snapshot)
        self.journal.append(("begin", handle.id))
        return handle

    def commit(self, handle: InMemoryTransaction) -> None:
        self.journal.append(("commit", handle.id))
        try:
            self._maybe_fail("commit")
            with self._lock:
                for key in handle.base.keys() - handle.data.keys():
                    self.store.pop(key, None)
                for key, value in handle.data.items():
                    if key not in handle.base or handle.base[key] != value:
                        self.store[key] = copy.deepcopy(value)
        finally:
            handle.open = False

    def rollback(self, handle: InMemoryTransaction) -> None:
        self.journal.append(("rollback", handle.id))
        try:
            self._maybe_fail("rollback")
        finally:
            handle.open = False

    def supports_savepoints(self, handle: InMemoryTransaction) -> bool:
        return self._savepoints_enabled

    def create_savepoint(self, handle: InMemoryTransaction) -> int:
        self._maybe_fail("create_savepoint")
        savepoint = len(handle.snapshots) + 1
        while savepoint in handle.snapshots:
            savepoint += 1
        handle.snapshots[savepoint] = copy.deepcopy(handle.data)
        handle.savepoints.append(savepoint)
        self.journal.append(("create_savepoint", handle.id))
        return savepoint

    def rollback_to_savepoint(self, handle: InMemoryTransaction, savepoint: int) -> None:
        self._maybe_fail("rollback_to_savepoint")
        handle.data = copy.deepcopy(handle.snapshots[savepoint])
        self.journal.append(("rollback_to_savepoint", handle.id))

    def release_savepoint(self, handle: InMemoryTransaction, savepoint: int) -> None:
        self._maybe_fail("release_savepoint")
        handle.snapshots.pop(savepoint, None)
        if savepoint in handle.savepoints:
            handle.savepoints.remove(savepoint)
        self.journal.append(("release_savepoint", handle.id))

    def suspend(self, handle: InMemoryTransaction) -> InMemoryTransaction:
        self._maybe_fail("suspend")
        self.journal.append(("suspend", handle.id))
        return handle

    def resume(self, suspended: InMemoryTransaction) -> None:
        self._maybe_fail("resume")
        self.journal.append(("resume", suspended.id))

    # -- Data access -------------------------------------------------------

    def current(self) -> InMemoryTransaction | None:
        """The unit of work bound under this driver, if any."""
        holder: ResourceHolder | None = TransactionContext.get_resource(self)
        if holder is None or not holder.transaction_active:
            return None
        return holder.handle

    def get(self, key: str, default: Any = None) -> Any:
        handle = self.current()
        if handle is not None:
            return handle.get(key, default)
        with self._lock:
            return self.store.get(key, default)

    def put(self, key: str, value: Any) -> None:
        handle = self.current()
        if handle is not None:
            handle.put(key, value)
            return
        with self._lock:
            self.store[key] = value

    def delete(self, key: str) -> None:
        handle = self.current()
        if handle is not None:
            handle.delete(key)
            return
        with self._lock:
            self.store.pop(key, None)

    def operations(self) -> list[str]:
        """The journal's operation names, in call order."""
        return [operation for operation, _ in self.journal]

    def _maybe_fail(self, operation: str) -> None:
        error = self.failures.pop(operation, None)
        if error is not None:
            raise error
