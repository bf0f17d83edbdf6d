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
"""TransactionManager — the unit-of-work propagation state machine.

A handle moves ``NONE -> ACTIVE(new | joined | nested) -> COMPLETED``; an outer
unit sits in ``SUSPENDED`` while a REQUIRES_NEW or NOT_SUPPORTED call runs.
The manager decides per call whether to begin, join, suspend or nest, drives
synchronization callbacks, and restores any suspended context exactly once,
on every exit path.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from pyweave.core.config import Config
from pyweave.transaction.config import SynchronizationPolicy, TransactionProperties
from pyweave.transaction.context import TransactionContext
from pyweave.transaction.definition import (
    DEFAULT_DEFINITION,
    TIMEOUT_DEFAULT,
    Isolation,
    Propagation,
    TransactionDefinition,
)
from pyweave.transaction.exceptions import (
    CannotCreateTransactionException,
    IllegalTransactionStateException,
    InvalidTimeoutException,
    NestedTransactionNotSupportedException,
    NoTransactionException,
    TransactionException,
    UnexpectedRollbackException,
    driver_errors,
)
from pyweave.transaction.ports.outbound import ResourceDriverPort
from pyweave.transaction.status import ResourceHolder, SuspendedResourcesHolder, TransactionStatus
from pyweave.transaction.synchronization import (
    CompletionStatus,
    TransactionSynchronization,
    invoke_after_completion,
    trigger_after_commit,
    trigger_before_commit,
    trigger_before_completion,
)

logger = structlog.get_logger("pyweave.transaction")

_BEGIN_NEW = (Propagation.REQUIRED, Propagation.REQUIRES_NEW, Propagation.NESTED)


class TransactionManager:
    """Orchestrates units of work on one resource driver.

    Usage::

        manager = TransactionManager(driver)
        status = manager.get_transaction(TransactionDefinition(propagation=Propagation.REQUIRED))
        try:
            do_work()
        except BaseException:
            manager.rollback(status)
            raise
        manager.commit(status)

    Args:
        driver: The physical resource driver.
        properties: Behavior settings; defaults when omitted.
        resource_key: Key under which units of work are bound in the
            context store. Defaults to the driver itself.
    """

    def __init__(
        self,
        driver: ResourceDriverPort,
        *,
        properties: TransactionProperties | None = None,
        resource_key: Any = None,
    ) -> None:
        props = properties or TransactionProperties()
        self._driver = driver
        self._resource_key = driver if resource_key is None else resource_key
        self.default_timeout = props.default_timeout
        self.nested_transaction_allowed = props.nested_transaction_allowed
        self.validate_existing_transaction = props.validate_existing_transaction
        self.global_rollback_on_participation_failure = props.global_rollback_on_participation_failure
        self.fail_early_on_global_rollback_only = props.fail_early_on_global_rollback_only
        self.rollback_on_commit_failure = props.rollback_on_commit_failure
        policy = props.synchronization
        if not isinstance(policy, SynchronizationPolicy):
            policy = SynchronizationPolicy(str(policy).lower())
        self.synchronization = policy
        if self.default_timeout < TIMEOUT_DEFAULT:
            raise InvalidTimeoutException("Invalid default timeout", self.default_timeout)

    @classmethod
    def from_config(cls, driver: ResourceDriverPort, config: Config, **kwargs: Any) -> TransactionManager:
        """Create a manager with settings bound from ``pyweave.transaction.*``."""
        return cls(driver, properties=config.bind(TransactionProperties), **kwargs)

    @property
    def driver(self) -> ResourceDriverPort:
        return self._driver

    @property
    def resource_key(self) -> Any:
        return self._resource_key

    # ------------------------------------------------------------------
    # get_transaction
    # ------------------------------------------------------------------

    def get_transaction(self, definition: TransactionDefinition | None = None) -> TransactionStatus:
        """Return a handle for *definition*, beginning, joining, suspending or nesting as required.

        Raises:
            NoTransactionException: MANDATORY with no unit of work bound.
            IllegalTransactionStateException: NEVER with a unit of work bound.
            InvalidTimeoutException: ``definition.timeout`` below ``TIMEOUT_DEFAULT``.
            CannotCreateTransactionException: The driver failed to begin.
        """
        definition = definition or DEFAULT_DEFINITION
        if definition.timeout < TIMEOUT_DEFAULT:
            raise InvalidTimeoutException("Invalid transaction timeout", definition.timeout)

        existing = self._current_holder()
        if existing is not None:
            return self._handle_existing_transaction(definition, existing)

        propagation = definition.propagation
        if propagation is Propagation.MANDATORY:
            raise NoTransactionException(
                "No existing transaction found for transaction marked with propagation 'mandatory'",
                code="TX_MANDATORY",
            )

        if propagation in _BEGIN_NEW:
            suspended = self.suspend(None)
            logger.debug("transaction_create", name=definition.name, definition=definition.describe())
            try:
                return self._start_transaction(definition, suspended)
            except BaseException as begin_exc:
                self._resume_after_begin_exception(suspended, begin_exc)
                raise

        if definition.isolation is not Isolation.DEFAULT:
            logger.warning(
                "isolation_without_transaction",
                isolation=definition.isolation.value,
                definition=definition.describe(),
            )
        new_synchronization = self.synchronization is SynchronizationPolicy.ALWAYS
        return self._prepare_status(definition, None, True, new_synchronization, None)

    def _handle_existing_transaction(
        self,
        definition: TransactionDefinition,
        existing: ResourceHolder,
    ) -> TransactionStatus:
        propagation = definition.propagation

        if propagation is Propagation.NEVER:
            raise IllegalTransactionStateException(
                "Existing transaction found for transaction marked with propagation 'never'",
                code="TX_NEVER",
            )

        if propagation is Propagation.NOT_SUPPORTED:
            logger.debug("transaction_suspend", name=definition.name, reason="not_supported")
            suspended = self.suspend(existing)
            new_synchronization = self.synchronization is SynchronizationPolicy.ALWAYS
            return self._prepare_status(definition, None, False, new_synchronization, suspended)

        if propagation is Propagation.REQUIRES_NEW:
            logger.debug("transaction_suspend", name=definition.name, reason="requires_new")
            suspended = self.suspend(existing)
            try:
                return self._start_transaction(definition, suspended)
            except BaseException as begin_exc:
                self._resume_after_begin_exception(suspended, begin_exc)
                raise

        if propagation is Propagation.NESTED:
            if not self.nested_transaction_allowed:
                raise NestedTransactionNotSupportedException(
                    "Transaction manager does not allow nested transactions by default - "
                    "set 'nested_transaction_allowed' to true",
                    code="TX_NESTED_DISALLOWED",
                )
            logger.debug("transaction_nested", name=definition.name)
            if self._driver.supports_savepoints(existing.handle):
                status = self._prepare_status(definition, existing, False, False, None)
                status.create_and_hold_savepoint()
                return status
            return self._start_transaction(definition, None, shadowed=existing)

        # REQUIRED, SUPPORTS, MANDATORY: participate.
        logger.debug("transaction_join", name=definition.name, definition=definition.describe())
        if self.validate_existing_transaction:
            self._validate_participation(definition)
        new_synchronization = self.synchronization is not SynchronizationPolicy.NEVER
        return self._prepare_status(definition, existing, False, new_synchronization, None)

    def _validate_participation(self, definition: TransactionDefinition) -> None:
        if definition.isolation is not Isolation.DEFAULT:
            current = TransactionContext.get_current_transaction_isolation_level()
            if current is not definition.isolation:
                raise IllegalTransactionStateException(
                    f"Participating transaction with definition [{definition.describe()}] specifies "
                    f"isolation level which is incompatible with existing transaction: "
                    f"{current.value if current else '(unknown)'}",
                    code="TX_ISOLATION_MISMATCH",
                )
        if not definition.read_only and TransactionContext.is_current_transaction_read_only():
            raise IllegalTransactionStateException(
                f"Participating transaction with definition [{definition.describe()}] is not marked "
                f"as read-only but existing transaction is",
                code="TX_READ_ONLY_MISMATCH",
            )

    def _start_transaction(
        self,
        definition: TransactionDefinition,
        suspended: SuspendedResourcesHolder | None,
        shadowed: ResourceHolder | None = None,
    ) -> TransactionStatus:
        resolved = dataclasses.replace(definition, timeout=self.determine_timeout(definition))
        with driver_errors("open transaction", CannotCreateTransactionException):
            handle = self._driver.begin(resolved)
        holder = ResourceHolder(handle, resolved)
        if shadowed is not None:
            TransactionContext.unbind_resource(self._resource_key)
        TransactionContext.bind_resource(self._resource_key, holder)
        logger.debug("transaction_begin", name=definition.name, handle=repr(handle))

        new_synchronization = self.synchronization is not SynchronizationPolicy.NEVER
        return self._prepare_status(definition, holder, True, new_synchronization, suspended, shadowed)

    def _prepare_status(
        self,
        definition: TransactionDefinition,
        transaction: ResourceHolder | None,
        new_transaction: bool,
        new_synchronization: bool,
        suspended: SuspendedResourcesHolder | None,
        shadowed: ResourceHolder | None = None,
    ) -> TransactionStatus:
        actual_new_synchronization = new_synchronization and not TransactionContext.is_synchronization_active()
        status = TransactionStatus(
            definition,
            self._driver,
            transaction,
            new_transaction,
            actual_new_synchronization,
            suspended,
            shadowed,
        )
        if status.new_synchronization:
            TransactionContext.set_actual_transaction_active(status.has_transaction())
            TransactionContext.set_current_transaction_isolation_level(
                definition.isolation if definition.isolation is not Isolation.DEFAULT else None
            )
            TransactionContext.set_current_transaction_read_only(definition.read_only)
            TransactionContext.set_current_transaction_name(definition.name)
            TransactionContext.init_synchronization()
        return status

    def determine_timeout(self, definition: TransactionDefinition) -> int:
        if definition.timeout != TIMEOUT_DEFAULT:
            return definition.timeout
        return self.default_timeout

    def _current_holder(self) -> ResourceHolder | None:
        holder = TransactionContext.get_resource(self._resource_key)
        if holder is not None and holder.transaction_active:
            return holder
        return None

    # ------------------------------------------------------------------
    # Suspend / resume
    # ------------------------------------------------------------------

    def suspend(self, transaction: ResourceHolder | None) -> SuspendedResourcesHolder | None:
        """Detach the current unit of work and synchronization state.

        Returns ``None`` when there is nothing to suspend.
        """
        if TransactionContext.is_synchronization_active():
            suspended_synchronizations = self._do_suspend_synchronization()
            try:
                suspended_resources = self._do_suspend(transaction) if transaction is not None else None
                name = TransactionContext.get_current_transaction_name()
                TransactionContext.set_current_transaction_name(None)
                read_only = TransactionContext.is_current_transaction_read_only()
                TransactionContext.set_current_transaction_read_only(False)
                isolation_level = TransactionContext.get_current_transaction_isolation_level()
                TransactionContext.set_current_transaction_isolation_level(None)
                was_active = TransactionContext.is_actual_transaction_active()
                TransactionContext.set_actual_transaction_active(False)
                return SuspendedResourcesHolder(
                    suspended_resources,
                    suspended_synchronizations,
                    name,
                    read_only,
                    isolation_level,
                    was_active,
                )
            except BaseException:
                self._do_resume_synchronization(suspended_synchronizations)
                raise

        if transaction is not None:
            return SuspendedResourcesHolder(self._do_suspend(transaction))
        return None

    def resume(self, resources_holder: SuspendedResourcesHolder | None) -> None:
        """Reattach a context captured by :meth:`suspend`. Each holder resumes once.

        If the driver cannot resume, the suspended unit of work is discarded
        with a warning and the resource error propagates.
        """
        if resources_holder is None:
            return
        resources_holder.consume()

        if resources_holder.suspended_resources is not None:
            holder, opaque = resources_holder.suspended_resources
            try:
                with driver_errors("resume transaction"):
                    self._driver.resume(opaque)
            except TransactionException as exc:
                holder.transaction_active = False
                logger.warning(
                    "suspended_transaction_discarded",
                    name=resources_holder.name,
                    handle=repr(holder.handle),
                    error=repr(exc),
                )
                raise
            TransactionContext.bind_resource(self._resource_key, holder)
            logger.debug("transaction_resume", name=resources_holder.name)

        synchronizations = resources_holder.suspended_synchronizations
        if synchronizations is not None:
            TransactionContext.set_actual_transaction_active(resources_holder.was_active)
            TransactionContext.set_current_transaction_isolation_level(resources_holder.isolation_level)
            TransactionContext.set_current_transaction_read_only(resources_holder.read_only)
            TransactionContext.set_current_transaction_name(resources_holder.name)
            self._do_resume_synchronization(synchronizations)

    def _do_suspend(self, holder: ResourceHolder) -> tuple[ResourceHolder, Any]:
        with driver_errors("suspend transaction"):
            opaque = self._driver.suspend(holder.handle)
        TransactionContext.unbind_resource(self._resource_key)
        return holder, opaque

    def _resume_after_begin_exception(
        self,
        suspended: SuspendedResourcesHolder | None,
        begin_exc: BaseException,
    ) -> None:
        try:
            self.resume(suspended)
        except BaseException:
            logger.error("begin_exception_overridden_by_resume_exception", error=repr(begin_exc))
            raise

    @staticmethod
    def _do_suspend_synchronization() -> list[TransactionSynchronization]:
        synchronizations = TransactionContext.get_synchronizations()
        for synchronization in synchronizations:
            synchronization.suspend()
        TransactionContext.clear_synchronization()
        return synchronizations

    @staticmethod
    def _do_resume_synchronization(synchronizations: list[TransactionSynchronization]) -> None:
        TransactionContext.init_synchronization()
        for synchronization in synchronizations:
            synchronization.resume()
            TransactionContext.register_synchronization(synchronization)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self, status: TransactionStatus) -> None:
        """Complete *status* successfully.

        Rollback-only handles are routed to rollback; a unit poisoned by a
        participant raises :class:`UnexpectedRollbackException` at its
        outermost boundary after rolling back.
        """
        if status.is_completed():
            raise IllegalTransactionStateException(
                "Transaction is already completed - do not call commit or rollback more than once per transaction"
            )

        if status.is_local_rollback_only():
            logger.debug("transaction_rollback_only_local", name=status.definition.name)
            self._process_rollback(status, unexpected=False)
            return

        if not self.should_commit_on_global_rollback_only() and status.is_global_rollback_only():
            logger.debug("transaction_rollback_only_global", name=status.definition.name)
            self._process_rollback(status, unexpected=True)
            return

        self._process_commit(status)

    def should_commit_on_global_rollback_only(self) -> bool:
        """Override to attempt a physical commit on globally rollback-only units."""
        return False

    def _process_commit(self, status: TransactionStatus) -> None:
        try:
            before_completion_invoked = False
            try:
                unexpected_rollback = False
                self._trigger_before_commit(status)
                self._trigger_before_completion(status)
                before_completion_invoked = True

                if status.has_savepoint():
                    logger.debug("savepoint_release", name=status.definition.name)
                    unexpected_rollback = status.is_global_rollback_only()
                    status.release_held_savepoint()
                elif status.is_new_transaction():
                    logger.debug("transaction_commit", name=status.definition.name)
                    unexpected_rollback = status.is_global_rollback_only()
                    self._do_commit(status)
                elif self.fail_early_on_global_rollback_only:
                    unexpected_rollback = status.is_global_rollback_only()

                if unexpected_rollback:
                    raise UnexpectedRollbackException(
                        "Transaction silently rolled back because it has been marked as rollback-only",
                        code="TX_UNEXPECTED_ROLLBACK",
                    )
            except UnexpectedRollbackException:
                self._trigger_after_completion(status, CompletionStatus.ROLLED_BACK)
                raise
            except TransactionException as exc:
                if self.rollback_on_commit_failure:
                    self._do_rollback_on_commit_exception(status, exc)
                else:
                    self._trigger_after_completion(status, CompletionStatus.UNKNOWN)
                raise
            except BaseException as exc:
                if not before_completion_invoked:
                    self._trigger_before_completion(status)
                self._do_rollback_on_commit_exception(status, exc)
                raise

            try:
                self._trigger_after_commit(status)
            finally:
                self._trigger_after_completion(status, CompletionStatus.COMMITTED)
        finally:
            self._cleanup_after_completion(status)

    def _do_commit(self, status: TransactionStatus) -> None:
        assert status.transaction is not None
        with driver_errors("commit transaction"):
            self._driver.commit(status.transaction.handle)

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def rollback(self, status: TransactionStatus) -> None:
        """Complete *status* unsuccessfully.

        A savepoint handle rolls back to its savepoint only; a new unit rolls
        back physically; a participant marks the shared unit rollback-only
        (unless ``global_rollback_on_participation_failure`` is off).
        """
        if status.is_completed():
            raise IllegalTransactionStateException(
                "Transaction is already completed - do not call commit or rollback more than once per transaction"
            )
        self._process_rollback(status, unexpected=False)

    def _process_rollback(self, status: TransactionStatus, unexpected: bool) -> None:
        try:
            unexpected_rollback = unexpected
            try:
                self._trigger_before_completion(status)

                if status.has_savepoint():
                    logger.debug("savepoint_rollback", name=status.definition.name)
                    status.rollback_to_held_savepoint()
                elif status.is_new_transaction():
                    logger.debug("transaction_rollback", name=status.definition.name)
                    self._do_rollback(status)
                else:
                    if status.has_transaction():
                        if status.is_local_rollback_only() or self.global_rollback_on_participation_failure:
                            logger.debug("transaction_participant_set_rollback_only", name=status.definition.name)
                            self._do_set_rollback_only(status)
                        else:
                            logger.debug("transaction_participant_rollback_deferred", name=status.definition.name)
                    else:
                        logger.debug("transaction_rollback_unavailable", name=status.definition.name)
                    if not self.fail_early_on_global_rollback_only:
                        unexpected_rollback = False
            except BaseException:
                self._trigger_after_completion(status, CompletionStatus.UNKNOWN)
                raise

            self._trigger_after_completion(status, CompletionStatus.ROLLED_BACK)

            if unexpected_rollback:
                raise UnexpectedRollbackException(
                    "Transaction rolled back because it has been marked as rollback-only",
                    code="TX_UNEXPECTED_ROLLBACK",
                )
        finally:
            self._cleanup_after_completion(status)

    def _do_rollback(self, status: TransactionStatus) -> None:
        assert status.transaction is not None
        with driver_errors("roll back transaction"):
            self._driver.rollback(status.transaction.handle)

    @staticmethod
    def _do_set_rollback_only(status: TransactionStatus) -> None:
        assert status.transaction is not None
        status.transaction.rollback_only = True

    def _do_rollback_on_commit_exception(self, status: TransactionStatus, exc: BaseException) -> None:
        try:
            if status.is_new_transaction():
                logger.debug("transaction_rollback_after_commit_exception", name=status.definition.name)
                self._do_rollback(status)
            elif status.has_transaction() and self.global_rollback_on_participation_failure:
                self._do_set_rollback_only(status)
        except BaseException:
            logger.error("commit_exception_overridden_by_rollback_exception", error=repr(exc))
            self._trigger_after_completion(status, CompletionStatus.UNKNOWN)
            raise
        self._trigger_after_completion(status, CompletionStatus.ROLLED_BACK)

    # ------------------------------------------------------------------
    # Synchronization triggers and cleanup
    # ------------------------------------------------------------------

    @staticmethod
    def _trigger_before_commit(status: TransactionStatus) -> None:
        if status.new_synchronization:
            trigger_before_commit(TransactionContext.get_synchronizations(), status.read_only)

    @staticmethod
    def _trigger_before_completion(status: TransactionStatus) -> None:
        if status.new_synchronization:
            trigger_before_completion(TransactionContext.get_synchronizations())

    @staticmethod
    def _trigger_after_commit(status: TransactionStatus) -> None:
        if status.new_synchronization:
            trigger_after_commit(TransactionContext.get_synchronizations())

    def _trigger_after_completion(self, status: TransactionStatus, completion: CompletionStatus) -> None:
        if not status.new_synchronization:
            return
        synchronizations = TransactionContext.get_synchronizations()
        TransactionContext.clear_synchronization()
        if not status.has_transaction() or status.is_new_transaction():
            invoke_after_completion(synchronizations, completion)
        elif synchronizations:
            self.register_after_completion_with_existing_transaction(status, synchronizations)

    def register_after_completion_with_existing_transaction(
        self,
        status: TransactionStatus,
        synchronizations: list[TransactionSynchronization],
    ) -> None:
        """Hook for units owned by an outer coordinator; the outcome is unknown here."""
        logger.debug("transaction_after_completion_unknown_outcome", name=status.definition.name)
        invoke_after_completion(synchronizations, CompletionStatus.UNKNOWN)

    def _cleanup_after_completion(self, status: TransactionStatus) -> None:
        status.set_completed()
        if status.new_synchronization:
            TransactionContext.clear()
        if status.is_new_transaction():
            assert status.transaction is not None
            status.transaction.transaction_active = False
            if TransactionContext.get_resource(self._resource_key) is status.transaction:
                TransactionContext.unbind_resource(self._resource_key)
            if status.shadowed is not None:
                TransactionContext.bind_resource(self._resource_key, status.shadowed)
        if status.suspended_resources is not None:
            self.resume(status.suspended_resources)

    # ------------------------------------------------------------------
    # Programmatic demarcation
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self, definition: TransactionDefinition | None = None) -> Iterator[TransactionStatus]:
        """Run a block as a unit of work: commit on normal exit, roll back on error.

        Usage::

            with manager.transaction(TransactionDefinition(name="transfer")) as status:
                ...
        """
        status = self.get_transaction(definition)
        try:
            yield status
        except BaseException:
            if not status.is_completed():
                self.rollback(status)
            raise
        if not status.is_completed():
            self.commit(status)
