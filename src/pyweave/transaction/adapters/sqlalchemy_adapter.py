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
"""SQLAlchemy resource driver — one Connection per unit of work."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Connection, Engine, NestedTransaction, RootTransaction

from pyweave.transaction.context import TransactionContext
from pyweave.transaction.definition import Isolation, TransactionDefinition
from pyweave.transaction.exceptions import NoTransactionException


@dataclass(eq=False)
class SqlAlchemyTransaction:
    """Handle for one unit of work: the connection and its root transaction."""

    connection: Connection
    transaction: RootTransaction
    definition: TransactionDefinition


class SqlAlchemyResourceDriver:
    """Drives units of work on a synchronous SQLAlchemy :class:`Engine`.

    Each unit checks out its own connection, applying the definition's
    isolation level as an execution option. Savepoints map to
    ``Connection.begin_nested()``. Application code reaches the connection of
    the current unit through :meth:`connection`.

    Usage::

        driver = SqlAlchemyResourceDriver(engine)
        manager = TransactionManager(driver)

        with manager.transaction():
            driver.connection().execute(insert(orders).values(id=1))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def begin(self, definition: TransactionDefinition) -> SqlAlchemyTransaction:
        connection = self.engine.connect()
        try:
            if definition.isolation is not Isolation.DEFAULT:
                connection.execution_options(isolation_level=definition.isolation.value)
            transaction = connection.begin()
        except BaseException:
            connection.close()
            raise
        return SqlAlchemyTransaction(connection, transaction, definition)

    def commit(self, handle: SqlAlchemyTransaction) -> None:
        try:
            handle.transaction.commit()
        finally:
            handle.connection.close()

    def rollback(self, handle: SqlAlchemyTransaction) -> None:
        try:
            handle.transaction.rollback()
        finally:
            handle.connection.close()

    def supports_savepoints(self, handle: SqlAlchemyTransaction) -> bool:
        return True

    def create_savepoint(self, handle: SqlAlchemyTransaction) -> NestedTransaction:
        return handle.connection.begin_nested()

    def rollback_to_savepoint(self, handle: SqlAlchemyTransaction, savepoint: NestedTransaction) -> None:
        savepoint.rollback()

    def release_savepoint(self, handle: SqlAlchemyTransaction, savepoint: NestedTransaction) -> None:
        if savepoint.is_active:
            savepoint.commit()

    def suspend(self, handle: SqlAlchemyTransaction) -> SqlAlchemyTransaction:
        return handle

    def resume(self, suspended: Any) -> None:
        return None

    def connection(self) -> Connection:
        """Return the connection of the unit of work bound to this driver.

        Raises:
            NoTransactionException: If no unit of work is bound.
        """
        holder = TransactionContext.get_resource(self)
        if holder is None or not holder.transaction_active:
            raise NoTransactionException(
                "No SQLAlchemy connection bound to the current context",
                code="TX_NO_CONNECTION",
            )
        return holder.handle.connection
