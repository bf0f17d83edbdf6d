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
"""Declarative transaction demarcation marker."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from pyweave.transaction.definition import TIMEOUT_DEFAULT, Isolation, Propagation
from pyweave.transaction.rules import NoRollbackRule, RollbackRule, TransactionAttribute

T = TypeVar("T")

TRANSACTION_ATTRIBUTE = "__pyweave_transaction_attribute__"


def transactional(
    propagation: Propagation = Propagation.REQUIRED,
    isolation: Isolation = Isolation.DEFAULT,
    timeout: int = TIMEOUT_DEFAULT,
    read_only: bool = False,
    rollback_for: Iterable[type[BaseException] | str] = (),
    no_rollback_for: Iterable[type[BaseException] | str] = (),
    name: str | None = None,
    qualifier: str | None = None,
) -> Callable[[T], T]:
    """Mark a method, or every public method of a class, as transactional.

    The decorator only records a :class:`TransactionAttribute`; the
    transaction interceptor applies it when the object is woven. A marker on
    a method takes precedence over one on its class.

    Usage::

        @transactional(rollback_for=(PaymentError,), no_rollback_for=(AuditWarning,))
        def transfer(self, source, target, amount): ...
    """
    rules: list[RollbackRule] = [RollbackRule(exc) for exc in rollback_for]
    rules.extend(NoRollbackRule(exc) for exc in no_rollback_for)
    attribute = TransactionAttribute(
        propagation=propagation,
        isolation=isolation,
        timeout=timeout,
        read_only=read_only,
        name=name,
        rollback_rules=tuple(rules),
        qualifier=qualifier,
    )

    def decorator(obj: T) -> T:
        target: Any = obj.__func__ if isinstance(obj, (staticmethod, classmethod)) else obj
        setattr(target, TRANSACTION_ATTRIBUTE, attribute)
        return obj

    return decorator
