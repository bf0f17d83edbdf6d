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
"""Integration tests: declarative transactions woven through the AOP chain."""

from __future__ import annotations

from typing import Any

import pytest
from structlog.testing import capture_logs

from pyweave.aop.chain import ChainResolver
from pyweave.aop.decorators import around, aspect
from pyweave.aop.invocation import current_proxy
from pyweave.aop.registry import AdvisorRegistry
from pyweave.aop.weaver import weave_bean
from pyweave.container.ordering import order
from pyweave.kernel.exceptions import ConfigurationException, IllegalStateException
from pyweave.transaction.adapters.memory import InMemoryResourceDriver
from pyweave.transaction.context import TransactionContext
from pyweave.transaction.decorators import transactional
from pyweave.transaction.definition import Propagation
from pyweave.transaction.exceptions import NoTransactionException, TransactionSystemException
from pyweave.transaction.interceptor import current_transaction_status, transaction_advisor
from pyweave.transaction.manager import TransactionManager
from pyweave.transaction.status import TransactionStatus

# ---------------------------------------------------------------------------
# Helper service
# ---------------------------------------------------------------------------


class AuditWarning(Exception):
    pass


class OrderService:
    def __init__(self, driver: InMemoryResourceDriver) -> None:
        self.driver = driver

    @transactional()
    def place(self, key: str, value: Any, fail: BaseException | None = None) -> str:
        self.driver.put(key, value)
        if fail is not None:
            raise fail
        return key

    @transactional(no_rollback_for=(AuditWarning,))
    def audit(self, key: str) -> None:
        self.driver.put(key, "audited")
        raise AuditWarning(key)

    @transactional(propagation=Propagation.REQUIRES_NEW)
    def record_attempt(self, key: str) -> None:
        self.driver.put(f"attempt:{key}", True)

    @transactional()
    def place_with_attempt(self, key: str) -> None:
        current_proxy().record_attempt(key)
        self.driver.put(key, "placed")
        raise RuntimeError("payment rejected")

    @transactional(name="custom-name")
    def named(self) -> str | None:
        return TransactionContext.get_current_transaction_name()

    @transactional()
    def default_named(self) -> str | None:
        return TransactionContext.get_current_transaction_name()

    @transactional()
    def current_status(self) -> TransactionStatus:
        return current_transaction_status()

    @transactional(qualifier="reporting")
    def report(self, key: str) -> None:
        self.driver.put(key, "report")

    @transactional(qualifier="unknown")
    def misconfigured(self) -> None:
        pass

    def untransacted(self) -> bool:
        return TransactionContext.is_actual_transaction_active()


@pytest.fixture
def driver() -> InMemoryResourceDriver:
    return InMemoryResourceDriver()


@pytest.fixture
def manager(driver: InMemoryResourceDriver) -> TransactionManager:
    return TransactionManager(driver)


@pytest.fixture
def registry(manager: TransactionManager) -> AdvisorRegistry:
    registry = AdvisorRegistry()
    registry.register(transaction_advisor(manager, order=10))
    return registry


@pytest.fixture
def service(driver: InMemoryResourceDriver, registry: AdvisorRegistry) -> OrderService:
    return weave_bean(OrderService(driver), ChainResolver(registry), expose_proxy=True)


# ---------------------------------------------------------------------------
# Commit / rollback decisions
# ---------------------------------------------------------------------------


class TestDeclarativeOutcome:
    def test_commits_on_return(self, service: OrderService, driver: InMemoryResourceDriver) -> None:
        assert service.place("order:1", "new") == "order:1"
        assert driver.store == {"order:1": "new"}
        assert driver.operations() == ["begin", "commit"]

    def test_rolls_back_and_reraises(self, service: OrderService, driver: InMemoryResourceDriver) -> None:
        with pytest.raises(ValueError, match="bad"):
            service.place("order:1", "new", fail=ValueError("bad"))
        assert driver.store == {}
        assert driver.operations() == ["begin", "rollback"]

    def test_no_rollback_rule_commits_and_reraises(self, service: OrderService, driver: InMemoryResourceDriver) -> None:
        with pytest.raises(AuditWarning):
            service.audit("order:7")
        assert driver.store == {"order:7": "audited"}

    def test_requires_new_through_exposed_proxy(self, service: OrderService, driver: InMemoryResourceDriver) -> None:
        with pytest.raises(RuntimeError, match="payment rejected"):
            service.place_with_attempt("order:9")
        assert driver.store == {"attempt:order:9": True}

    def test_non_transactional_method_runs_without_unit(self, service: OrderService) -> None:
        assert service.untransacted() is False

    def test_context_is_clean_after_call(self, service: OrderService) -> None:
        service.place("k", "v")
        assert TransactionContext.get_resource_map() == {}
        assert not TransactionContext.is_synchronization_active()


# ---------------------------------------------------------------------------
# Attribute details
# ---------------------------------------------------------------------------


class TestTransactionNaming:
    def test_explicit_name(self, service: OrderService) -> None:
        assert service.named() == "custom-name"

    def test_name_defaults_to_class_and_method(self, service: OrderService) -> None:
        assert service.default_named() == "OrderService.default_named"


class TestCurrentStatus:
    def test_available_inside_call(self, service: OrderService) -> None:
        status = service.current_status()
        assert status.is_new_transaction()
        assert status.is_completed()

    def test_unavailable_outside_call(self) -> None:
        with pytest.raises(NoTransactionException):
            current_transaction_status()


class TestManagerQualifier:
    def test_qualifier_selects_manager(self, driver: InMemoryResourceDriver, manager: TransactionManager) -> None:
        reporting_driver = InMemoryResourceDriver()
        registry = AdvisorRegistry()
        registry.register(
            transaction_advisor(manager, managers={"reporting": TransactionManager(reporting_driver)})
        )
        service = weave_bean(OrderService(reporting_driver), ChainResolver(registry))

        service.report("r:1")

        assert reporting_driver.store == {"r:1": "report"}
        assert driver.journal == []

    def test_unknown_qualifier(self, service: OrderService) -> None:
        with pytest.raises(IllegalStateException) as exc_info:
            service.misconfigured()
        assert exc_info.value.code == "TX_NO_MANAGER"


class AsyncOrderService:
    def __init__(self, driver: InMemoryResourceDriver) -> None:
        self.driver = driver

    @transactional()
    async def place(self, key: str) -> None:
        self.driver.put(key, "placed")


@transactional()
class MixedOrderService:
    def place(self) -> bool:
        return TransactionContext.is_actual_transaction_active()

    async def place_later(self) -> None:
        pass


class TestCoroutineMethods:
    def test_transactional_coroutine_is_rejected_before_begin(
        self, driver: InMemoryResourceDriver, registry: AdvisorRegistry
    ) -> None:
        service = weave_bean(AsyncOrderService(driver), ChainResolver(registry))

        with pytest.raises(ConfigurationException) as exc_info:
            service.place("o:1")

        assert exc_info.value.code == "TX_ASYNC_UNSUPPORTED"
        assert driver.journal == []

    def test_class_level_marker_rejects_only_coroutines(self, registry: AdvisorRegistry) -> None:
        service = weave_bean(MixedOrderService(), ChainResolver(registry))

        assert service.place() is True
        with pytest.raises(ConfigurationException):
            service.place_later()


# ---------------------------------------------------------------------------
# Completion failures
# ---------------------------------------------------------------------------


class TestCompletionFailures:
    def test_rollback_failure_overrides_application_exception(
        self, service: OrderService, driver: InMemoryResourceDriver
    ) -> None:
        driver.failures["rollback"] = RuntimeError("connection lost")
        original = ValueError("bad input")

        with capture_logs() as logs:
            with pytest.raises(TransactionSystemException) as exc_info:
                service.place("k", "v", fail=original)

        assert exc_info.value.application_exception is original
        assert "application_exception_overridden_by_rollback_exception" in [e["event"] for e in logs]

    def test_commit_failure_after_return(self, service: OrderService, driver: InMemoryResourceDriver) -> None:
        driver.failures["commit"] = RuntimeError("disk full")
        with pytest.raises(TransactionSystemException):
            service.place("k", "v")
        assert driver.store == {}


# ---------------------------------------------------------------------------
# Interplay with other advice
# ---------------------------------------------------------------------------


class TestAdviceOrdering:
    def test_transaction_boundary_sits_at_its_order(
        self, driver: InMemoryResourceDriver, registry: AdvisorRegistry
    ) -> None:
        seen: list[tuple[str, bool]] = []

        @order(1)
        @aspect
        class OuterAspect:
            @around("**.OrderService.place")
            def outside(self, jp):
                seen.append(("outer", TransactionContext.is_actual_transaction_active()))
                return jp.proceed()

        @order(20)
        @aspect
        class InnerAspect:
            @around("**.OrderService.place")
            def inside(self, jp):
                seen.append(("inner", TransactionContext.is_actual_transaction_active()))
                return jp.proceed()

        registry.register_aspect(OuterAspect())
        registry.register_aspect(InnerAspect())
        service = weave_bean(OrderService(driver), ChainResolver(registry))

        service.place("k", "v")

        assert seen == [("outer", False), ("inner", True)]
