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
"""Tests for TransactionContext — the context-bound transaction store."""

from __future__ import annotations

import asyncio
import contextvars
import threading

import pytest

from pyweave.transaction.context import TransactionContext
from pyweave.transaction.definition import Isolation
from pyweave.transaction.exceptions import IllegalTransactionStateException
from pyweave.transaction.synchronization import TransactionSynchronization


class TestResources:
    def test_bind_get_unbind(self) -> None:
        TransactionContext.bind_resource("db", "conn-1")

        assert TransactionContext.has_resource("db")
        assert TransactionContext.get_resource("db") == "conn-1"
        assert TransactionContext.unbind_resource("db") == "conn-1"
        assert TransactionContext.get_resource("db") is None

    def test_double_bind_raises(self) -> None:
        TransactionContext.bind_resource("db", "conn-1")
        with pytest.raises(IllegalTransactionStateException):
            TransactionContext.bind_resource("db", "conn-2")

    def test_unbind_missing_raises(self) -> None:
        with pytest.raises(IllegalTransactionStateException):
            TransactionContext.unbind_resource("db")
        assert TransactionContext.unbind_resource_if_possible("db") is None

    def test_resource_map_is_read_only(self) -> None:
        TransactionContext.bind_resource("db", "conn-1")
        with pytest.raises(TypeError):
            TransactionContext.get_resource_map()["other"] = "x"  # type: ignore[index]


class TestSynchronizationRegistry:
    def test_lifecycle(self) -> None:
        assert not TransactionContext.is_synchronization_active()
        TransactionContext.init_synchronization()
        sync = TransactionSynchronization()
        TransactionContext.register_synchronization(sync)

        assert TransactionContext.get_synchronizations() == [sync]
        TransactionContext.clear_synchronization()
        assert not TransactionContext.is_synchronization_active()

    def test_double_init_raises(self) -> None:
        TransactionContext.init_synchronization()
        with pytest.raises(IllegalTransactionStateException):
            TransactionContext.init_synchronization()

    def test_clear_inactive_raises(self) -> None:
        with pytest.raises(IllegalTransactionStateException):
            TransactionContext.clear_synchronization()

    def test_get_inactive_raises(self) -> None:
        with pytest.raises(IllegalTransactionStateException):
            TransactionContext.get_synchronizations()


class TestAttributes:
    def test_set_and_clear(self) -> None:
        TransactionContext.set_current_transaction_name("tx")
        TransactionContext.set_current_transaction_read_only(True)
        TransactionContext.set_current_transaction_isolation_level(Isolation.SERIALIZABLE)
        TransactionContext.set_actual_transaction_active(True)

        TransactionContext.clear()

        assert TransactionContext.get_current_transaction_name() is None
        assert not TransactionContext.is_current_transaction_read_only()
        assert TransactionContext.get_current_transaction_isolation_level() is None
        assert not TransactionContext.is_actual_transaction_active()


class TestIsolation:
    def test_other_thread_sees_empty_context(self) -> None:
        TransactionContext.bind_resource("db", "conn-1")
        seen: list[object] = []

        thread = threading.Thread(target=lambda: seen.append(TransactionContext.get_resource("db")))
        thread.start()
        thread.join()

        assert seen == [None]

    def test_copied_context_never_observes_later_writes(self) -> None:
        TransactionContext.bind_resource("db", "conn-1")
        snapshot = contextvars.copy_context()
        TransactionContext.bind_resource("cache", "c-1")

        assert snapshot.run(TransactionContext.has_resource, "cache") is False
        assert snapshot.run(TransactionContext.get_resource, "db") == "conn-1"

    def test_tasks_do_not_leak_into_each_other(self) -> None:
        async def bind_and_read(key: str) -> list[str]:
            TransactionContext.bind_resource(key, key)
            await asyncio.sleep(0)
            return sorted(TransactionContext.get_resource_map())

        async def main() -> list[list[str]]:
            return list(await asyncio.gather(bind_and_read("a"), bind_and_read("b")))

        assert asyncio.run(main()) == [["a"], ["b"]]
