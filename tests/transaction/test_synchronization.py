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
"""Tests for synchronization callbacks — ordering, triggers and policies."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from pyweave.container.ordering import order
from pyweave.transaction.adapters.memory import InMemoryResourceDriver
from pyweave.transaction.config import TransactionProperties
from pyweave.transaction.context import TransactionContext
from pyweave.transaction.definition import Propagation, TransactionDefinition
from pyweave.transaction.exceptions import IllegalTransactionStateException
from pyweave.transaction.manager import TransactionManager
from pyweave.transaction.synchronization import CompletionStatus, TransactionSynchronization

# ---- Fixtures ---------------------------------------------------------------


class Recorder(TransactionSynchronization):
    def __init__(self, log: list[str], label: str = "sync", order: int | None = None) -> None:
        self.log = log
        self.label = label
        self.order = order

    def flush(self) -> None:
        self.log.append(f"{self.label}:flush")

    def before_commit(self, read_only: bool) -> None:
        self.log.append(f"{self.label}:before_commit:{read_only}")

    def before_completion(self) -> None:
        self.log.append(f"{self.label}:before_completion")

    def after_commit(self) -> None:
        self.log.append(f"{self.label}:after_commit")

    def after_completion(self, status: CompletionStatus) -> None:
        self.log.append(f"{self.label}:after_completion:{status.value}")


@order(1)
class EarlySync(Recorder):
    pass


class ExplodingBeforeCommit(TransactionSynchronization):
    def before_commit(self, read_only: bool) -> None:
        raise RuntimeError("validation failed")


class ExplodingAfterCompletion(TransactionSynchronization):
    def after_completion(self, status: CompletionStatus) -> None:
        raise RuntimeError("listener broke")


@pytest.fixture
def driver() -> InMemoryResourceDriver:
    return InMemoryResourceDriver()


@pytest.fixture
def manager(driver: InMemoryResourceDriver) -> TransactionManager:
    return TransactionManager(driver)


# ---- Tests ------------------------------------------------------------------


class TestTriggers:
    def test_commit_sequence(self, manager: TransactionManager) -> None:
        log: list[str] = []
        status = manager.get_transaction(TransactionDefinition(read_only=True))
        TransactionContext.register_synchronization(Recorder(log))

        manager.commit(status)

        assert log == [
            "sync:before_commit:True",
            "sync:before_completion",
            "sync:after_commit",
            "sync:after_completion:COMMITTED",
        ]

    def test_rollback_sequence(self, manager: TransactionManager) -> None:
        log: list[str] = []
        status = manager.get_transaction()
        TransactionContext.register_synchronization(Recorder(log))

        manager.rollback(status)

        assert log == ["sync:before_completion", "sync:after_completion:ROLLED_BACK"]

    def test_ordering_by_order_then_registration(self, manager: TransactionManager) -> None:
        log: list[str] = []
        status = manager.get_transaction()
        TransactionContext.register_synchronization(Recorder(log, "late"))
        TransactionContext.register_synchronization(Recorder(log, "explicit", order=5))
        TransactionContext.register_synchronization(EarlySync(log, "early"))
        TransactionContext.register_synchronization(Recorder(log, "late2"))

        manager.rollback(status)

        completions = [entry.split(":")[0] for entry in log if "after_completion" in entry]
        assert completions == ["early", "explicit", "late", "late2"]

    def test_before_commit_failure_rolls_back(self, manager: TransactionManager, driver: InMemoryResourceDriver) -> None:
        log: list[str] = []
        status = manager.get_transaction()
        driver.put("k", "v")
        TransactionContext.register_synchronization(ExplodingBeforeCommit())
        TransactionContext.register_synchronization(Recorder(log))

        with pytest.raises(RuntimeError, match="validation failed"):
            manager.commit(status)

        assert driver.store == {}
        assert driver.operations() == ["begin", "rollback"]
        assert log == ["sync:before_completion", "sync:after_completion:ROLLED_BACK"]

    def test_after_completion_failure_is_logged_not_raised(self, manager: TransactionManager) -> None:
        log: list[str] = []
        status = manager.get_transaction()
        TransactionContext.register_synchronization(ExplodingAfterCompletion())
        TransactionContext.register_synchronization(Recorder(log))

        with capture_logs() as logs:
            manager.commit(status)

        assert "sync:after_completion:COMMITTED" in log
        assert "synchronization_after_completion_failed" in [entry["event"] for entry in logs]

    def test_participant_registration_completes_with_outer_unit(self, manager: TransactionManager) -> None:
        log: list[str] = []
        outer = manager.get_transaction()
        inner = manager.get_transaction()
        TransactionContext.register_synchronization(Recorder(log))
        manager.commit(inner)

        assert log == []
        manager.commit(outer)
        assert log[-1] == "sync:after_completion:COMMITTED"

    def test_register_requires_active_synchronization(self) -> None:
        with pytest.raises(IllegalTransactionStateException):
            TransactionContext.register_synchronization(Recorder([]))


class TestSynchronizationPolicy:
    def test_never_disables_synchronization(self, driver: InMemoryResourceDriver) -> None:
        manager = TransactionManager(driver, properties=TransactionProperties(synchronization="never"))
        status = manager.get_transaction()

        assert not status.new_synchronization
        assert not TransactionContext.is_synchronization_active()
        manager.commit(status)

    def test_on_actual_transaction_skips_empty_handles(self, driver: InMemoryResourceDriver) -> None:
        manager = TransactionManager(
            driver, properties=TransactionProperties(synchronization="on_actual_transaction")
        )
        empty = manager.get_transaction(TransactionDefinition(propagation=Propagation.SUPPORTS))
        assert not TransactionContext.is_synchronization_active()
        manager.commit(empty)

        status = manager.get_transaction()
        assert TransactionContext.is_synchronization_active()
        manager.commit(status)

    def test_always_synchronizes_empty_handles(self, manager: TransactionManager) -> None:
        log: list[str] = []
        empty = manager.get_transaction(TransactionDefinition(propagation=Propagation.NOT_SUPPORTED))
        TransactionContext.register_synchronization(Recorder(log))

        manager.commit(empty)

        assert log[-1] == "sync:after_completion:COMMITTED"


class TestFlush:
    def test_flush_reaches_synchronizations_in_order(self, manager: TransactionManager) -> None:
        log: list[str] = []
        status = manager.get_transaction()
        TransactionContext.register_synchronization(Recorder(log, "late"))
        TransactionContext.register_synchronization(EarlySync(log, "early"))

        status.flush()

        assert log == ["early:flush", "late:flush"]
        manager.commit(status)

    def test_flush_without_synchronization_is_a_no_op(self, driver: InMemoryResourceDriver) -> None:
        manager = TransactionManager(driver, properties=TransactionProperties(synchronization="never"))
        status = manager.get_transaction()

        status.flush()

        assert not TransactionContext.is_synchronization_active()
        manager.commit(status)
