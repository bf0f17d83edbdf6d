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
"""Transaction synchronization callbacks and their ordered triggering."""

from __future__ import annotations

import enum
from collections.abc import Iterable

import structlog

from pyweave.container.ordering import LOWEST_PRECEDENCE, find_order

logger = structlog.get_logger("pyweave.transaction")


class CompletionStatus(enum.Enum):
    """Outcome passed to :meth:`TransactionSynchronization.after_completion`."""

    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"
    UNKNOWN = "UNKNOWN"


class TransactionSynchronization:
    """Listener for unit-of-work lifecycle events. Override the hooks you need.

    Ordering: the ``order`` attribute when set on the instance, else the
    class's ``@order``, else ``LOWEST_PRECEDENCE``. Equal orders fire in
    registration order.
    """

    order: int | None = None

    def get_order(self) -> int:
        if self.order is not None:
            return self.order
        declared = find_order(type(self))
        return LOWEST_PRECEDENCE if declared is None else declared

    def suspend(self) -> None:
        """The unit of work is being suspended; unbind any context resources."""

    def resume(self) -> None:
        """The unit of work is being resumed; rebind context resources."""

    def flush(self) -> None:
        """Flush underlying sessions to the store, if applicable."""

    def before_commit(self, read_only: bool) -> None:
        """Called before commit; raising here causes a rollback."""

    def before_completion(self) -> None:
        """Called before commit or rollback; errors are logged, not propagated."""

    def after_commit(self) -> None:
        """Called after a successful physical commit; errors propagate."""

    def after_completion(self, status: CompletionStatus) -> None:
        """Called after commit or rollback; errors are logged, not propagated."""


def sort_synchronizations(
    synchronizations: Iterable[TransactionSynchronization],
) -> list[TransactionSynchronization]:
    # sorted() is stable, so ties keep registration order.
    return sorted(synchronizations, key=lambda s: s.get_order())


def trigger_flush(synchronizations: Iterable[TransactionSynchronization]) -> None:
    for synchronization in synchronizations:
        synchronization.flush()


def trigger_before_commit(synchronizations: Iterable[TransactionSynchronization], read_only: bool) -> None:
    for synchronization in synchronizations:
        synchronization.before_commit(read_only)


def trigger_before_completion(synchronizations: Iterable[TransactionSynchronization]) -> None:
    for synchronization in synchronizations:
        try:
            synchronization.before_completion()
        except Exception:
            logger.exception("synchronization_before_completion_failed", synchronization=repr(synchronization))


def trigger_after_commit(synchronizations: Iterable[TransactionSynchronization]) -> None:
    for synchronization in synchronizations:
        synchronization.after_commit()


def invoke_after_completion(
    synchronizations: Iterable[TransactionSynchronization],
    status: CompletionStatus,
) -> None:
    for synchronization in synchronizations:
        try:
            synchronization.after_completion(status)
        except Exception:
            logger.exception("synchronization_after_completion_failed", synchronization=repr(synchronization))
