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
"""ChainResolver — resolves and caches the interceptor chain per call site."""

from __future__ import annotations

import threading

import structlog

from pyweave.aop.registry import AdvisorRegistry
from pyweave.aop.types import MethodDescriptor, MethodInterceptor

logger = structlog.get_logger("pyweave.aop")

Chain = tuple[MethodInterceptor, ...]

EMPTY_CHAIN: Chain = ()


class ChainResolver:
    """Builds the ordered interceptor chain for a ``(method, target type)`` pair.

    Each pair is resolved at most once per registry version; the result,
    including an empty chain, is cached and returned as an immutable tuple.
    Lookups read the cache without locking; misses are computed under a lock
    with a double check so concurrent first use resolves once.
    """

    def __init__(self, registry: AdvisorRegistry) -> None:
        self._registry = registry
        self._cache: dict[tuple[MethodDescriptor, type], Chain] = {}
        self._version = registry.version
        self._lock = threading.Lock()

    @property
    def registry(self) -> AdvisorRegistry:
        return self._registry

    def resolve(self, method: MethodDescriptor, target_type: type) -> Chain:
        if self._version != self._registry.version:
            self._invalidate()

        key = (method, target_type)
        chain = self._cache.get(key)
        if chain is not None:
            return chain

        with self._lock:
            chain = self._cache.get(key)
            if chain is None:
                chain = self._compute(method, target_type)
                self._cache[key] = chain
        return chain

    def cached_size(self) -> int:
        return len(self._cache)

    def _compute(self, method: MethodDescriptor, target_type: type) -> Chain:
        if not self._registry.is_candidate(target_type):
            return EMPTY_CHAIN
        advisors = self._registry.lookup(target_type, method)
        logger.debug(
            "chain_resolved",
            method=method.qualified_name,
            target=target_type.__qualname__,
            advisors=[a.name for a in advisors],
        )
        if not advisors:
            return EMPTY_CHAIN
        return tuple(a.interceptor for a in advisors)

    def _invalidate(self) -> None:
        with self._lock:
            if self._version != self._registry.version:
                self._cache = {}
                self._version = self._registry.version
