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
"""Tests for TransactionManager commit/rollback processing and settings."""

from __future__ import annotations

from dataclasses import replace

import pytest

from pyweave.core.config import Config
from pyweave.transaction.adapters.memory import InMemoryResourceDriver
from pyweave.transaction.config import SynchronizationPolicy, TransactionProperties
from pyweave.transaction.context import TransactionContext
from pyweave.transaction.definition import Isolation, Propagation, TransactionDefinition
from pyweave.transaction.exceptions import (
    CannotCreateTransactionException,
    IllegalTransactionStateException,
    InvalidTimeoutException,
    NestedTransactionNotSupportedException,
    TransactionSystemException,
    UnexpectedRollbackException,
)
from pyweave.transaction.manager import TransactionManager
from pyweave.transaction.synchronization import CompletionStatus, TransactionSynchronization


class RecordingSynchronization(TransactionSynchronization):
    def __init__(self) -> None:
        self.completions: list[CompletionStatus] = []

    def after_completion(self, status: CompletionStatus) -> None:
        self.completions.append(status)


@pytest.fixture
def driver() -> InMemoryResourceDriver:
    return InMemoryResourceDriver()


@pytest.fixture
def manager(driver: InMemoryResourceDriver) -> TransactionManager:
    return TransactionManager(driver)


def _manager(driver: InMemoryResourceDriver, **settings: object) -> TransactionManager:
    return TransactionManager(driver, properties=replace(TransactionProperties(), **settings))


# ---------------------------------------------------------------------------
# Commit / rollback of a new unit
# ---------------------------------------------------------------------------


class TestCommitAndRollback:
    def test_commit_publishes_writes(self, manager: TransactionManager, driver: InMemoryResourceDriver) -> None:
        status = manager.get_transaction()
        driver.put("order:1", "placed")
        assert driver.store == {}

        manager.commit(status)

        assert driver.store == {"order:1": "placed"}
        assert driver.operations() == ["begin", "commit"]

    def test_rollback_discards_writes(self, manager: TransactionManager, driver: InMemoryResourceDriver) -> None:
        status = manager.get_transaction()
        driver.put("order:1", "placed")

        manager.rollback(status)

        assert driver.store == {}
        assert driver.operations() == ["begin", "rollback"]

    def test_completed_handle_cannot_be_reused(self, manager: TransactionManager) -> None:
        status = manager.get_transaction()
        manager.commit(status)

        with pytest.raises(IllegalTransactionStateException):
            manager.commit(status)
        with pytest.raises(IllegalTransactionStateException):
            manager.rollback(status)

    def test_local_rollback_only_rolls_back_silently(
        self, manager: TransactionManager, driver: InMemoryResourceDriver
    ) -> None:
        status = manager.get_transaction()
        driver.put("k", "v")
        status.set_rollback_only()

        manager.commit(status)

        assert driver.store == {}
        assert driver.operations() == ["begin", "rollback"]


# ---------------------------------------------------------------------------
# Participation failures
# ---------------------------------------------------------------------------


class TestParticipantRollback:
    def test_participant_rollback_poisons_outer_unit(
        self, manager: TransactionManager, driver: InMemoryResourceDriver
    ) -> None:
        outer = manager.get_transaction()
        driver.put("k", "v")
        inner = manager.get_transaction()
        manager.rollback(inner)

        assert outer.is_global_rollback_only()
        with pytest.raises(UnexpectedRollbackException):
            manager.commit(outer)

        assert driver.store == {}
        assert driver.operations() == ["begin", "rollback"]
        assert TransactionContext.get_resource_map() == {}

    def test_participant_local_rollback_only_poisons_outer_unit(self, manager: TransactionManager) -> None:
        outer = manager.get_transaction()
        inner = manager.get_transaction()
        inner.set_rollback_only()
        manager.commit(inner)

        with pytest.raises(UnexpectedRollbackException):
            manager.commit(outer)

    def test_outer_rollback_after_poisoning_is_silent(self, manager: TransactionManager) -> None:
        outer = manager.get_transaction()
        manager.rollback(manager.get_transaction())

        manager.rollback(outer)

        assert outer.is_completed()

    def test_participation_failure_can_be_local(self, driver: InMemoryResourceDriver) -> None:
        manager = _manager(driver, global_rollback_on_participation_failure=False)
        outer = manager.get_transaction()
        driver.put("k", "v")
        manager.rollback(manager.get_transaction())

        manager.commit(outer)

        assert driver.store == {"k": "v"}

    def test_fail_early_raises_at_next_participant(self, driver: InMemoryResourceDriver) -> None:
        manager = _manager(driver, fail_early_on_global_rollback_only=True)
        outer = manager.get_transaction()
        manager.rollback(manager.get_transaction())

        second = manager.get_transaction()
        with pytest.raises(UnexpectedRollbackException):
            manager.commit(second)

        with pytest.raises(UnexpectedRollbackException):
            manager.commit(outer)


# ---------------------------------------------------------------------------
# Driver failures
# ---------------------------------------------------------------------------


class TestDriverFailures:
    def test_commit_failure_is_translated(self, manager: TransactionManager, driver: InMemoryResourceDriver) -> None:
        sync = RecordingSynchronization()
        status = manager.get_transaction()
        TransactionContext.register_synchronization(sync)
        driver.failures["commit"] = RuntimeError("disk full")

        with pytest.raises(TransactionSystemException) as exc_info:
            manager.commit(status)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert sync.completions == [CompletionStatus.UNKNOWN]
        assert status.is_completed()
        assert TransactionContext.get_resource_map() == {}

    def test_rollback_on_commit_failure(self, driver: InMemoryResourceDriver) -> None:
        manager = _manager(driver, rollback_on_commit_failure=True)
        sync = RecordingSynchronization()
        status = manager.get_transaction()
        TransactionContext.register_synchronization(sync)
        driver.failures["commit"] = RuntimeError("disk full")

        with pytest.raises(TransactionSystemException):
            manager.commit(status)

        assert driver.operations() == ["begin", "commit", "rollback"]
        assert sync.completions == [CompletionStatus.ROLLED_BACK]

    def test_rollback_failure_is_translated(self, manager: TransactionManager, driver: InMemoryResourceDriver) -> None:
        sync = RecordingSynchronization()
        status = manager.get_transaction()
        TransactionContext.register_synchronization(sync)
        driver.failures["rollback"] = RuntimeError("connection lost")

        with pytest.raises(TransactionSystemException):
            manager.rollback(status)

        assert sync.completions == [CompletionStatus.UNKNOWN]
        assert TransactionContext.get_resource_map() == {}

    def test_begin_failure_raises_cannot_create(
        self, manager: TransactionManager, driver: InMemoryResourceDriver
    ) -> None:
        driver.failures["begin"] = OSError("refused")

        with pytest.raises(CannotCreateTransactionException) as exc_info:
            manager.get_transaction()

        assert isinstance(exc_info.value.__cause__, OSError)
        assert TransactionContext.get_resource_map() == {}
        assert not TransactionContext.is_synchronization_active()

    def test_begin_failure_resumes_suspended_unit(
        self, manager: TransactionManager, driver: InMemoryResourceDriver
    ) -> None:
        outer = manager.get_transaction(TransactionDefinition(name="outer"))
        driver.failures["begin"] = OSError("refused")

        with pytest.raises(CannotCreateTransactionException):
            manager.get_transaction(TransactionDefinition(propagation=Propagation.REQUIRES_NEW))

        assert TransactionContext.get_resource(driver) is outer.transaction
        assert TransactionContext.get_current_transaction_name() == "outer"
        assert TransactionContext.is_synchronization_active()
        manager.commit(outer)


# ---------------------------------------------------------------------------
# Definitions and settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_invalid_timeout(self, manager: TransactionManager) -> None:
        with pytest.raises(InvalidTimeoutException) as exc_info:
            manager.get_transaction(TransactionDefinition(timeout=-5))
        assert exc_info.value.timeout == -5

    def test_invalid_default_timeout(self, driver: InMemoryResourceDriver) -> None:
        with pytest.raises(InvalidTimeoutException):
            _manager(driver, default_timeout=-2)

    def test_default_timeout_is_resolved_before_begin(self, driver: InMemoryResourceDriver) -> None:
        manager = _manager(driver, default_timeout=30)
        status = manager.get_transaction()
        assert status.transaction.handle.definition.timeout == 30
        manager.commit(status)

        status = manager.get_transaction(TransactionDefinition(timeout=5))
        assert status.transaction.handle.definition.timeout == 5
        manager.commit(status)

    def test_nested_not_allowed(self, driver: InMemoryResourceDriver) -> None:
        manager = _manager(driver, nested_transaction_allowed=False)
        outer = manager.get_transaction()

        with pytest.raises(NestedTransactionNotSupportedException):
            manager.get_transaction(TransactionDefinition(propagation=Propagation.NESTED))
        manager.commit(outer)

    def test_validation_rejects_writable_join_of_read_only_unit(self, driver: InMemoryResourceDriver) -> None:
        manager = _manager(driver, validate_existing_transaction=True)
        outer = manager.get_transaction(TransactionDefinition(read_only=True))

        with pytest.raises(IllegalTransactionStateException) as exc_info:
            manager.get_transaction(TransactionDefinition(read_only=False))
        assert exc_info.value.code == "TX_READ_ONLY_MISMATCH"
        manager.commit(outer)

    def test_validation_rejects_isolation_mismatch(self, driver: InMemoryResourceDriver) -> None:
        manager = _manager(driver, validate_existing_transaction=True)
        outer = manager.get_transaction(TransactionDefinition(isolation=Isolation.READ_COMMITTED))

        with pytest.raises(IllegalTransactionStateException) as exc_info:
            manager.get_transaction(TransactionDefinition(isolation=Isolation.SERIALIZABLE))
        assert exc_info.value.code == "TX_ISOLATION_MISMATCH"

        joined = manager.get_transaction(TransactionDefinition(isolation=Isolation.READ_COMMITTED))
        manager.commit(joined)
        manager.commit(outer)

    def test_without_validation_any_join_is_accepted(self, manager: TransactionManager) -> None:
        outer = manager.get_transaction(TransactionDefinition(read_only=True))
        inner = manager.get_transaction(TransactionDefinition(isolation=Isolation.SERIALIZABLE))
        manager.commit(inner)
        manager.commit(outer)

    def test_from_config(self, driver: InMemoryResourceDriver) -> None:
        config = Config(
            {
                "pyweave": {
                    "transaction": {
                        "default_timeout": 15,
                        "nested_transaction_allowed": False,
                        "synchronization": "on_actual_transaction",
                    }
                }
            }
        )
        manager = TransactionManager.from_config(driver, config)

        assert manager.default_timeout == 15
        assert manager.nested_transaction_allowed is False
        assert manager.synchronization is SynchronizationPolicy.ON_ACTUAL_TRANSACTION

    def test_custom_resource_key(self, driver: InMemoryResourceDriver) -> None:
        manager = TransactionManager(driver, resource_key="orders-db")
        status = manager.get_transaction()

        assert TransactionContext.get_resource("orders-db") is status.transaction
        manager.commit(status)
        assert not TransactionContext.has_resource("orders-db")


# ---------------------------------------------------------------------------
# Programmatic demarcation
# ---------------------------------------------------------------------------


class TestTransactionBlock:
    def test_commits_on_normal_exit(self, manager: TransactionManager, driver: InMemoryResourceDriver) -> None:
        with manager.transaction(TransactionDefinition(name="block")) as status:
            driver.put("k", "v")
            assert TransactionContext.get_current_transaction_name() == "block"

        assert status.is_completed()
        assert driver.store == {"k": "v"}

    def test_rolls_back_and_reraises(self, manager: TransactionManager, driver: InMemoryResourceDriver) -> None:
        with pytest.raises(KeyError):
            with manager.transaction():
                driver.put("k", "v")
                raise KeyError("missing")

        assert driver.store == {}
        assert driver.operations() == ["begin", "rollback"]

    def test_rollback_only_block_rolls_back(self, manager: TransactionManager, driver: InMemoryResourceDriver) -> None:
        with manager.transaction() as status:
            driver.put("k", "v")
            status.set_rollback_only()

        assert driver.store == {}
