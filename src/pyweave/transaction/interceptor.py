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
"""Declarative transactions as an interceptor in the AOP chain."""

from __future__ import annotations

from collections.abc import Mapping
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

import structlog

from pyweave.aop.registry import Advisor
from pyweave.aop.types import JoinPoint, MethodDescriptor
from pyweave.kernel.exceptions import IllegalStateException
from pyweave.transaction.attribute_source import AnnotationTransactionAttributeSource, TransactionAttributeSource
from pyweave.transaction.exceptions import NoTransactionException, TransactionSystemException
from pyweave.transaction.manager import TransactionManager
from pyweave.transaction.rules import TransactionAttribute
from pyweave.transaction.status import TransactionStatus

logger = structlog.get_logger("pyweave.transaction")


@dataclass
class TransactionInfo:
    """Per-call record of the transaction an interceptor opened (or joined)."""

    manager: TransactionManager | None
    attribute: TransactionAttribute | None
    joinpoint_identification: str
    status: TransactionStatus | None = None
    _token: Token[TransactionInfo | None] | None = field(default=None, repr=False)


_info_var: ContextVar[TransactionInfo | None] = ContextVar("pyweave_tx_info", default=None)


def current_transaction_status() -> TransactionStatus:
    """Return the status of the transactional call currently executing.

    Raises:
        NoTransactionException: Outside an intercepted transactional call.
    """
    info = _info_var.get()
    if info is None or info.status is None:
        raise NoTransactionException(
            "No transaction aspect-managed TransactionStatus in scope",
            code="TX_NO_STATUS",
        )
    return info.status


class TransactionInterceptor:
    """Wraps each matched call in ``get_transaction`` / ``commit`` / ``rollback``.

    On success the unit is committed. On an exception, the attribute's
    rollback rules decide between rollback and commit; the original
    exception is re-raised unless completing the unit itself fails, in which
    case the completion error propagates and carries the original as its
    ``application_exception``.

    Args:
        manager: Default transaction manager.
        attribute_source: Where attributes come from; ``@transactional``
            markers by default.
        managers: Managers selectable by ``@transactional(qualifier=...)``.
    """

    def __init__(
        self,
        manager: TransactionManager,
        attribute_source: TransactionAttributeSource | None = None,
        managers: Mapping[str, TransactionManager] | None = None,
    ) -> None:
        self.manager = manager
        self.attribute_source = attribute_source or AnnotationTransactionAttributeSource()
        self.managers = dict(managers or {})

    def invoke(self, join_point: JoinPoint) -> Any:
        target_type = type(join_point.target)
        attribute = self.attribute_source.get_transaction_attribute(join_point.method, target_type)
        manager = self.determine_manager(attribute)
        identification = f"{target_type.__name__}.{join_point.method.name}"

        info = self._create_transaction_if_necessary(manager, attribute, identification)
        try:
            result = join_point.proceed()
        except BaseException as exc:
            self._complete_after_throwing(info, exc)
            raise
        finally:
            self._cleanup_transaction_info(info)
        self._commit_after_returning(info)
        return result

    def determine_manager(self, attribute: TransactionAttribute | None) -> TransactionManager:
        if attribute is None or not attribute.qualifier:
            return self.manager
        manager = self.managers.get(attribute.qualifier)
        if manager is None:
            raise IllegalStateException(
                f"No transaction manager registered for qualifier '{attribute.qualifier}'",
                code="TX_NO_MANAGER",
            )
        return manager

    def _create_transaction_if_necessary(
        self,
        manager: TransactionManager,
        attribute: TransactionAttribute | None,
        identification: str,
    ) -> TransactionInfo:
        if attribute is not None and attribute.name is None:
            attribute = attribute.with_name(identification)
        info = TransactionInfo(manager, attribute, identification)
        if attribute is not None:
            info.status = manager.get_transaction(attribute)
        info._token = _info_var.set(info)
        return info

    @staticmethod
    def _cleanup_transaction_info(info: TransactionInfo) -> None:
        if info._token is not None:
            _info_var.reset(info._token)
            info._token = None

    @staticmethod
    def _commit_after_returning(info: TransactionInfo) -> None:
        if info.status is not None and info.manager is not None:
            info.manager.commit(info.status)

    @staticmethod
    def _complete_after_throwing(info: TransactionInfo, exc: BaseException) -> None:
        if info.status is None or info.manager is None or info.attribute is None:
            return
        if info.attribute.rollback_on(exc):
            action = "rollback"
            complete = info.manager.rollback
        else:
            action = "commit"
            complete = info.manager.commit
        try:
            complete(info.status)
        except TransactionSystemException as completion_exc:
            logger.error(
                f"application_exception_overridden_by_{action}_exception",
                method=info.joinpoint_identification,
                error=repr(exc),
            )
            completion_exc.init_application_exception(exc)
            raise
        except BaseException:
            logger.error(
                f"application_exception_overridden_by_{action}_exception",
                method=info.joinpoint_identification,
                error=repr(exc),
            )
            raise


class TransactionAttributeSourcePointcut:
    """Selects exactly the methods for which the source yields an attribute."""

    def __init__(self, source: TransactionAttributeSource) -> None:
        self.source = source

    def class_filter(self, target_type: type) -> bool:
        return self.source.is_candidate_class(target_type)

    def matches(self, method: MethodDescriptor, target_type: type) -> bool:
        return self.source.get_transaction_attribute(method, target_type) is not None

    def __repr__(self) -> str:
        return f"TransactionAttributeSourcePointcut({type(self.source).__name__})"


def transaction_advisor(
    manager: TransactionManager,
    source: TransactionAttributeSource | None = None,
    *,
    managers: Mapping[str, TransactionManager] | None = None,
    order: int | None = None,
) -> Advisor:
    """Build the advisor that applies declarative transactions.

    Usage::

        registry.register(transaction_advisor(TransactionManager(driver)))
    """
    source = source or AnnotationTransactionAttributeSource()
    return Advisor(
        pointcut=TransactionAttributeSourcePointcut(source),
        interceptor=TransactionInterceptor(manager, source, managers),
        order=order,
        name="TransactionInterceptor",
    )
