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
"""Transaction attribute sources — where a method's transaction attribute comes from."""

from __future__ import annotations

import fnmatch
import inspect
import threading
from collections.abc import Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

from pyweave.aop.types import MethodDescriptor
from pyweave.core.config import Config
from pyweave.kernel.exceptions import ConfigurationException
from pyweave.transaction.decorators import TRANSACTION_ATTRIBUTE
from pyweave.transaction.definition import TIMEOUT_DEFAULT, Isolation, Propagation
from pyweave.transaction.rules import NoRollbackRule, RollbackRule, TransactionAttribute

METHODS_KEY = "pyweave.transaction.methods"


@runtime_checkable
class TransactionAttributeSource(Protocol):
    """Strategy returning the transaction attribute for a method, or ``None``."""

    def get_transaction_attribute(self, method: MethodDescriptor, target_type: type) -> TransactionAttribute | None: ...

    def is_candidate_class(self, target_type: type) -> bool: ...


_NO_ATTRIBUTE = object()


class _CachingAttributeSource:
    """Memoizes lookups per ``(method, target type)``, including misses."""

    def __init__(self) -> None:
        self._cache: dict[tuple[MethodDescriptor, type], Any] = {}
        self._lock = threading.Lock()

    def get_transaction_attribute(self, method: MethodDescriptor, target_type: type) -> TransactionAttribute | None:
        key = (method, target_type)
        cached = self._cache.get(key)
        if cached is None:
            attribute = self._compute(method, target_type)
            if attribute is not None:
                _check_synchronous(method, target_type)
            cached = _NO_ATTRIBUTE if attribute is None else attribute
            with self._lock:
                cached = self._cache.setdefault(key, cached)
        return None if cached is _NO_ATTRIBUTE else cached

    def is_candidate_class(self, target_type: type) -> bool:
        return True

    def _compute(self, method: MethodDescriptor, target_type: type) -> TransactionAttribute | None:
        raise NotImplementedError


class AnnotationTransactionAttributeSource(_CachingAttributeSource):
    """Reads ``@transactional`` markers.

    Lookup order: the method as resolved on the target type, the method on
    its declaring type, the target type itself, then the declaring type.
    Names starting with ``_`` are never transactional.
    """

    def is_candidate_class(self, target_type: type) -> bool:
        if _marker(target_type) is not None:
            return True
        for klass in target_type.__mro__:
            if klass is object:
                continue
            for name, value in vars(klass).items():
                if not name.startswith("_") and _marker(value) is not None:
                    return True
        return False

    def _compute(self, method: MethodDescriptor, target_type: type) -> TransactionAttribute | None:
        if method.name.startswith("_"):
            return None
        attribute = _marker(getattr(target_type, method.name, None))
        if attribute is None:
            attribute = _marker(method.function())
        if attribute is None:
            attribute = _marker(target_type)
        if attribute is None and method.declaring_type is not target_type:
            attribute = _marker(method.declaring_type)
        return attribute


class NameMatchTransactionAttributeSource(_CachingAttributeSource):
    """Maps method-name patterns (``*`` wildcards) to attributes.

    When several patterns match, the longest one wins.

    Usage::

        source = NameMatchTransactionAttributeSource({
            "get_*": TransactionAttribute(read_only=True),
            "*": TransactionAttribute(),
        })
    """

    def __init__(self, name_map: Mapping[str, TransactionAttribute] | None = None) -> None:
        super().__init__()
        self._name_map: dict[str, TransactionAttribute] = dict(name_map or {})

    @classmethod
    def from_config(cls, config: Config) -> NameMatchTransactionAttributeSource:
        """Build a source from the ``pyweave.transaction.methods`` section.

        Each entry maps a pattern to ``propagation``, ``isolation``,
        ``timeout``, ``read_only``, ``rollback_for`` and ``no_rollback_for``
        (lists of exception name fragments).
        """
        methods = config.get_section(METHODS_KEY)
        return cls({pattern: _attribute_from_mapping(pattern, entry or {}) for pattern, entry in methods.items()})

    def add(self, pattern: str, attribute: TransactionAttribute) -> None:
        self._name_map[pattern] = attribute

    def _compute(self, method: MethodDescriptor, target_type: type) -> TransactionAttribute | None:
        best: str | None = None
        for pattern in self._name_map:
            if fnmatch.fnmatchcase(method.name, pattern) and (best is None or len(pattern) > len(best)):
                best = pattern
        return None if best is None else self._name_map[best]


class CompositeTransactionAttributeSource:
    """Asks each source in turn; the first attribute found wins."""

    def __init__(self, sources: Iterable[TransactionAttributeSource]) -> None:
        self.sources = tuple(sources)

    def get_transaction_attribute(self, method: MethodDescriptor, target_type: type) -> TransactionAttribute | None:
        for source in self.sources:
            attribute = source.get_transaction_attribute(method, target_type)
            if attribute is not None:
                return attribute
        return None

    def is_candidate_class(self, target_type: type) -> bool:
        return any(source.is_candidate_class(target_type) for source in self.sources)


def _check_synchronous(method: MethodDescriptor, target_type: type) -> None:
    func = getattr(target_type, method.name, None)
    func = getattr(func, "__func__", func)
    if inspect.iscoroutinefunction(func) or inspect.isasyncgenfunction(func):
        raise ConfigurationException(
            f"{target_type.__name__}.{method.name} is a coroutine function; "
            "transactions are bound to synchronous calls only",
            code="TX_ASYNC_UNSUPPORTED",
            context={"method": method.name, "type": target_type.__name__},
        )


def _marker(obj: Any) -> TransactionAttribute | None:
    if obj is None:
        return None
    obj = getattr(obj, "__func__", obj)
    if isinstance(obj, type):
        # Only a marker declared on the class itself.
        return vars(obj).get(TRANSACTION_ATTRIBUTE)
    return getattr(obj, TRANSACTION_ATTRIBUTE, None)


def _attribute_from_mapping(pattern: str, entry: Mapping[str, Any]) -> TransactionAttribute:
    try:
        propagation = Propagation[str(entry.get("propagation", "REQUIRED")).upper()]
        isolation = Isolation[str(entry.get("isolation", "DEFAULT")).upper().replace(" ", "_")]
    except KeyError as exc:
        raise ConfigurationException(
            f"Invalid transaction setting for method pattern '{pattern}': {exc}",
            code="TX_CONFIG",
        ) from exc
    rules: list[RollbackRule] = [RollbackRule(str(name)) for name in entry.get("rollback_for", ())]
    rules.extend(NoRollbackRule(str(name)) for name in entry.get("no_rollback_for", ()))
    return TransactionAttribute(
        propagation=propagation,
        isolation=isolation,
        timeout=int(entry.get("timeout", TIMEOUT_DEFAULT)),
        read_only=bool(entry.get("read_only", False)),
        rollback_rules=tuple(rules),
        qualifier=entry.get("qualifier"),
    )
