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
"""AdvisorRegistry — holds pointcut/interceptor bindings and answers lookups."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from typing import Any

from pyweave.aop.advice import build_interceptor
from pyweave.aop.decorators import advice_of, is_aspect
from pyweave.aop.pointcut import ExpressionPointcut, Pointcut
from pyweave.aop.types import MethodDescriptor, MethodInterceptor
from pyweave.container.ordering import find_order


@dataclass(frozen=True)
class Advisor:
    """Binds a pointcut to one interceptor plus precedence metadata.

    Attributes:
        pointcut: Selector deciding where the interceptor applies.
        interceptor: The behavior unit.
        order: Explicit precedence (lower runs first); ``None`` sorts last.
        group: Declaration group (an aspect instance, for example).
            Advisors of one group stay adjacent and keep declaration order.
        name: Label used in logs and reprs.
    """

    pointcut: Pointcut
    interceptor: MethodInterceptor
    order: int | None = None
    group: Any = None
    name: str = ""
    sequence: int = field(default=0, compare=False)
    group_rank: int = field(default=0, compare=False)

    def sort_key(self) -> tuple[int, int, int, int]:
        explicit = self.order is not None
        return (0 if explicit else 1, self.order if explicit else 0, self.group_rank, self.sequence)


class AdvisorRegistry:
    """Registry of advisors, kept in resolved precedence order.

    Usage::

        registry = AdvisorRegistry()
        registry.register_aspect(LoggingAspect())
        registry.register(Advisor(pointcut, interceptor, order=5))

        advisors = registry.lookup(OrderService, MethodDescriptor.of(OrderService, "create"))

    Writes are serialized and publish a new immutable snapshot, so lookups
    never lock. Every write bumps :attr:`version`.
    """

    def __init__(self) -> None:
        self._advisors: tuple[Advisor, ...] = ()
        self._lock = threading.Lock()
        self._sequence = itertools.count()
        self._group_ranks: dict[int, int] = {}
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def advisors(self) -> tuple[Advisor, ...]:
        """All advisors in precedence order."""
        return self._advisors

    def register(self, advisor: Advisor) -> Advisor:
        """Add *advisor* and return the stored (sequenced) copy."""
        with self._lock:
            stored = self._sequenced(advisor)
            self._advisors = tuple(sorted((*self._advisors, stored), key=Advisor.sort_key))
            self._version += 1
        return stored

    def register_aspect(self, aspect_instance: Any) -> list[Advisor]:
        """Extract advice methods from an ``@aspect`` instance, in declaration order.

        All advisors share the aspect's ``@order`` and form one group.
        """
        aspect_cls = type(aspect_instance)
        if not is_aspect(aspect_cls):
            raise ValueError(f"{aspect_cls.__name__} is not decorated with @aspect")
        order = find_order(aspect_cls)
        advisors: list[Advisor] = []

        for name in _declared_names(aspect_cls):
            declaration = advice_of(getattr(aspect_cls, name, None))
            if declaration is None:
                continue
            handler = getattr(aspect_instance, name)
            advisors.append(
                Advisor(
                    pointcut=ExpressionPointcut(declaration.pointcut),
                    interceptor=build_interceptor(declaration.kind, handler, **declaration.options),
                    order=order,
                    group=aspect_instance,
                    name=f"{aspect_cls.__name__}.{name}",
                )
            )

        with self._lock:
            stored = [self._sequenced(a) for a in advisors]
            self._advisors = tuple(sorted((*self._advisors, *stored), key=Advisor.sort_key))
            self._version += 1
        return stored

    def unregister(self, advisor: Advisor) -> None:
        with self._lock:
            self._advisors = tuple(a for a in self._advisors if a is not advisor)
            group = advisor.group
            if group is not None and not any(a.group is group for a in self._advisors):
                # Ranks are keyed by id(), valid only while the group is registered.
                self._group_ranks.pop(id(group), None)
            self._version += 1

    def lookup(self, target_type: type, method: MethodDescriptor) -> list[Advisor]:
        """Return advisors whose pointcut selects *method* on *target_type*.

        The type filter runs before the method matcher for each advisor.
        """
        return [
            a
            for a in self._advisors
            if a.pointcut.class_filter(target_type) and a.pointcut.matches(method, target_type)
        ]

    def is_candidate(self, target_type: type) -> bool:
        """Cheap pre-filter: can any advisor apply to *target_type* at all?"""
        return any(a.pointcut.class_filter(target_type) for a in self._advisors)

    def _sequenced(self, advisor: Advisor) -> Advisor:
        sequence = next(self._sequence)
        if advisor.group is None:
            rank = sequence
        else:
            rank = self._group_ranks.setdefault(id(advisor.group), sequence)
        return Advisor(
            pointcut=advisor.pointcut,
            interceptor=advisor.interceptor,
            order=advisor.order,
            group=advisor.group,
            name=advisor.name or type(advisor.interceptor).__name__,
            sequence=sequence,
            group_rank=rank,
        )


def _declared_names(cls: type) -> list[str]:
    """Attribute names of *cls* in definition order, base classes first."""
    names: dict[str, None] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        names.update(dict.fromkeys(vars(klass)))
    return list(names)
