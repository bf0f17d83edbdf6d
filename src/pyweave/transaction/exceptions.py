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
"""Transaction error taxonomy.

* Configuration errors — :class:`IllegalTransactionStateException` and
  subclasses, :class:`InvalidTimeoutException`,
  :class:`NestedTransactionNotSupportedException`. Fatal, never retried.
* Resource errors — :class:`CannotCreateTransactionException` and
  :class:`TransactionSystemException`, raised from the driver's own error.
* Unexpected rollback — :class:`UnexpectedRollbackException`.

Business errors raised by the intercepted call are never wrapped.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from pyweave.kernel.exceptions import InfrastructureException, PyWeaveException


class TransactionException(PyWeaveException):
    """Base class for all transaction errors."""


class IllegalTransactionStateException(TransactionException):
    """The requested operation conflicts with the current transaction state."""


class NoTransactionException(IllegalTransactionStateException):
    """A transaction is required (MANDATORY) but none is bound."""


class InvalidTimeoutException(TransactionException):
    """A definition carries a timeout below ``TIMEOUT_DEFAULT``."""

    def __init__(self, message: str, timeout: int) -> None:
        super().__init__(message, code="TX_INVALID_TIMEOUT", context={"timeout": timeout})
        self.timeout = timeout


class CannotCreateTransactionException(TransactionException, InfrastructureException):
    """The resource driver failed to begin a unit of work."""


class NestedTransactionNotSupportedException(CannotCreateTransactionException):
    """NESTED propagation or savepoints were requested but are unavailable."""


class TransactionSystemException(TransactionException, InfrastructureException):
    """The resource driver failed to commit, roll back, suspend, resume or manage a savepoint.

    When this error superseded an exception raised by application code, the
    original is kept in :attr:`application_exception`.
    """

    def __init__(self, message: str, code: str | None = None, context: dict | None = None) -> None:
        super().__init__(message, code=code, context=context)
        self.application_exception: BaseException | None = None

    def init_application_exception(self, exc: BaseException) -> None:
        if self.application_exception is not None:
            raise IllegalTransactionStateException("Already holding an application exception")
        self.application_exception = exc


class UnexpectedRollbackException(TransactionException):
    """Commit was requested but the unit had been marked rollback-only."""


@contextmanager
def driver_errors(action: str, error_type: type[TransactionException] | None = None) -> Iterator[None]:
    """Translate resource driver failures raised inside the block.

    Transaction errors pass through unchanged; anything else is raised as
    *error_type* (``TransactionSystemException`` by default) chained from the
    original.
    """
    try:
        yield
    except TransactionException:
        raise
    except Exception as exc:
        raise (error_type or TransactionSystemException)(f"Could not {action}: {exc}") from exc
