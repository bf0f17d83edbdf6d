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
"""Aspect and advice decorators.

An advice method carries one :class:`AdviceDeclaration`, read back by
:meth:`~pyweave.aop.registry.AdvisorRegistry.register_aspect`::

    @aspect
    @order(10)
    class AuditAspect:
        @before("**.OrderService.*")
        def audit(self, jp: JoinPoint) -> None: ...
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar

T = TypeVar("T", bound=type)
F = TypeVar("F", bound=Callable[..., Any])

ASPECT_ATTR = "__pyweave_aspect__"
ADVICE_ATTR = "__pyweave_advice__"


@dataclass(frozen=True)
class AdviceDeclaration:
    """Advice kind, pointcut expression and interceptor options of one method."""

    kind: str
    pointcut: str
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


def aspect(cls: T) -> T:
    """Mark a class as an aspect.

    Use :func:`~pyweave.container.ordering.order` to give its advice a precedence.
    """
    setattr(cls, ASPECT_ATTR, True)
    return cls


def is_aspect(cls: type) -> bool:
    return bool(getattr(cls, ASPECT_ATTR, False))


def advice_of(fn: Any) -> AdviceDeclaration | None:
    """Return the advice declared on *fn*, or ``None``."""
    declaration = getattr(fn, ADVICE_ATTR, None)
    return declaration if isinstance(declaration, AdviceDeclaration) else None


def _declare(kind: str, pointcut: str, **options: Any) -> Callable[[F], F]:
    declaration = AdviceDeclaration(kind, pointcut, MappingProxyType(options))

    def decorator(fn: F) -> F:
        setattr(fn, ADVICE_ATTR, declaration)
        return fn

    return decorator


def before(pointcut: str) -> Callable[[F], F]:
    return _declare("before", pointcut)


def after_returning(pointcut: str) -> Callable[[F], F]:
    """Advice run with ``jp.return_value`` set after a normal return."""
    return _declare("after_returning", pointcut)


def after_throwing(
    pointcut: str,
    throwing: type[BaseException] | tuple[type[BaseException], ...] = Exception,
) -> Callable[[F], F]:
    """Advice run with ``jp.exception`` set when the call raises *throwing*."""
    return _declare("after_throwing", pointcut, throwing=throwing)


def after(pointcut: str) -> Callable[[F], F]:
    return _declare("after", pointcut)


def around(pointcut: str) -> Callable[[F], F]:
    """Advice that receives the join point and decides whether to proceed."""
    return _declare("around", pointcut)
