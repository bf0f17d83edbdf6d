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
"""Context-bound transaction state backed by contextvars.

Holds, per thread of control (and per asyncio task), the resources bound by
transaction managers, the active synchronization callbacks and the
descriptive attributes of the current unit of work. Values stored in the
context variables are never mutated in place: every write publishes a new
mapping or tuple, so a context copied into another thread or task can never
observe changes made here.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextvars import ContextVar
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pyweave.transaction.definition import Isolation
from pyweave.transaction.exceptions import IllegalTransactionStateException

if TYPE_CHECKING:
    from pyweave.transaction.synchronization import TransactionSynchronization

_EMPTY: Mapping[Any, Any] = MappingProxyType({})

_resources_var: ContextVar[Mapping[Any, Any]] = ContextVar("pyweave_tx_resources", default=_EMPTY)
_synchronizations_var: ContextVar[tuple[TransactionSynchronization, ...] | None] = ContextVar(
    "pyweave_tx_synchronizations", default=None
)
_name_var: ContextVar[str | None] = ContextVar("pyweave_tx_name", default=None)
_read_only_var: ContextVar[bool] = ContextVar("pyweave_tx_read_only", default=False)
_isolation_var: ContextVar[Isolation | None] = ContextVar("pyweave_tx_isolation", default=None)
_active_var: ContextVar[bool] = ContextVar("pyweave_tx_active", default=False)


class TransactionContext:
    """Static accessors for the current context's transaction state."""

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    @staticmethod
    def get_resource_map() -> Mapping[Any, Any]:
        return _resources_var.get()

    @staticmethod
    def has_resource(key: Any) -> bool:
        return key in _resources_var.get()

    @staticmethod
    def get_resource(key: Any) -> Any:
        """Return the resource bound under *key*, or ``None``."""
        return _resources_var.get().get(key)

    @staticmethod
    def bind_resource(key: Any, value: Any) -> None:
        """Bind *value* under *key*.

        Raises:
            IllegalTransactionStateException: If *key* is already bound.
        """
        current = _resources_var.get()
        if key in current:
            raise IllegalTransactionStateException(
                f"Already value [{current[key]!r}] for key [{key!r}] bound to context"
            )
        _resources_var.set(MappingProxyType({**current, key: value}))

    @staticmethod
    def unbind_resource(key: Any) -> Any:
        """Remove and return the resource bound under *key*.

        Raises:
            IllegalTransactionStateException: If nothing is bound under *key*.
        """
        value = TransactionContext.unbind_resource_if_possible(key)
        if value is None:
            raise IllegalTransactionStateException(f"No value for key [{key!r}] bound to context")
        return value

    @staticmethod
    def unbind_resource_if_possible(key: Any) -> Any:
        current = _resources_var.get()
        if key not in current:
            return None
        remaining = {k: v for k, v in current.items() if k != key}
        _resources_var.set(MappingProxyType(remaining) if remaining else _EMPTY)
        return current[key]

    # ------------------------------------------------------------------
    # Synchronizations
    # ------------------------------------------------------------------

    @staticmethod
    def is_synchronization_active() -> bool:
        return _synchronizations_var.get() is not None

    @staticmethod
    def init_synchronization() -> None:
        if TransactionContext.is_synchronization_active():
            raise IllegalTransactionStateException("Cannot activate transaction synchronization - already active")
        _synchronizations_var.set(())

    @staticmethod
    def register_synchronization(synchronization: TransactionSynchronization) -> None:
        """Register a callback for the current unit of work.

        Raises:
            IllegalTransactionStateException: If synchronization is not active.
        """
        current = _synchronizations_var.get()
        if current is None:
            raise IllegalTransactionStateException("Transaction synchronization is not active")
        _synchronizations_var.set((*current, synchronization))

    @staticmethod
    def get_synchronizations() -> list[TransactionSynchronization]:
        """Registered callbacks sorted by order; ties keep registration order."""
        from pyweave.transaction.synchronization import sort_synchronizations

        current = _synchronizations_var.get()
        if current is None:
            raise IllegalTransactionStateException("Transaction synchronization is not active")
        return sort_synchronizations(current)

    @staticmethod
    def clear_synchronization() -> None:
        if not TransactionContext.is_synchronization_active():
            raise IllegalTransactionStateException("Cannot deactivate transaction synchronization - not active")
        _synchronizations_var.set(None)

    # ------------------------------------------------------------------
    # Descriptive attributes
    # ------------------------------------------------------------------

    @staticmethod
    def get_current_transaction_name() -> str | None:
        return _name_var.get()

    @staticmethod
    def set_current_transaction_name(name: str | None) -> None:
        _name_var.set(name)

    @staticmethod
    def is_current_transaction_read_only() -> bool:
        return _read_only_var.get()

    @staticmethod
    def set_current_transaction_read_only(read_only: bool) -> None:
        _read_only_var.set(read_only)

    @staticmethod
    def get_current_transaction_isolation_level() -> Isolation | None:
        return _isolation_var.get()

    @staticmethod
    def set_current_transaction_isolation_level(isolation: Isolation | None) -> None:
        _isolation_var.set(isolation)

    @staticmethod
    def is_actual_transaction_active() -> bool:
        return _active_var.get()

    @staticmethod
    def set_actual_transaction_active(active: bool) -> None:
        _active_var.set(active)

    @staticmethod
    def clear() -> None:
        """Reset synchronizations and descriptive attributes (not resources)."""
        _synchronizations_var.set(None)
        _name_var.set(None)
        _read_only_var.set(False)
        _isolation_var.set(None)
        _active_var.set(False)
