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
"""Advice adapters — turn aspect handler methods into chain interceptors.

Every advice kind is a :class:`~pyweave.aop.types.MethodInterceptor`, so one
resolved chain carries all of them. "After" kinds do not reorder the chain:
they run their handler once ``proceed`` returns or raises.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pyweave.aop.types import JoinPoint

Handler = Callable[[JoinPoint], Any]


class BeforeAdviceInterceptor:
    """Runs the handler, then proceeds. The handler may rewrite ``jp.args``."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler

    def invoke(self, join_point: JoinPoint) -> Any:
        self.handler(join_point)
        return join_point.proceed()


class AfterReturningAdviceInterceptor:
    """Runs the handler with ``jp.return_value`` set after a normal return."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler

    def invoke(self, join_point: JoinPoint) -> Any:
        result = join_point.proceed()
        join_point.return_value = result
        self.handler(join_point)
        return result


class AfterThrowingAdviceInterceptor:
    """Runs the handler with ``jp.exception`` set, then re-raises.

    Only exceptions matching *throwing* trigger the handler.
    """

    def __init__(
        self,
        handler: Handler,
        throwing: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    ) -> None:
        self.handler = handler
        self.throwing = throwing

    def invoke(self, join_point: JoinPoint) -> Any:
        try:
            return join_point.proceed()
        except BaseException as exc:
            if isinstance(exc, self.throwing):
                join_point.exception = exc
                self.handler(join_point)
            raise


class AfterAdviceInterceptor:
    """Runs the handler whatever the outcome (``finally`` semantics)."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler

    def invoke(self, join_point: JoinPoint) -> Any:
        try:
            return join_point.proceed()
        finally:
            self.handler(join_point)


class AroundAdviceInterceptor:
    """Hands full control to the handler, which decides whether to proceed."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler

    def invoke(self, join_point: JoinPoint) -> Any:
        return self.handler(join_point)


ADVICE_INTERCEPTORS: dict[str, type] = {
    "before": BeforeAdviceInterceptor,
    "after_returning": AfterReturningAdviceInterceptor,
    "after_throwing": AfterThrowingAdviceInterceptor,
    "after": AfterAdviceInterceptor,
    "around": AroundAdviceInterceptor,
}


def build_interceptor(advice_type: str, handler: Handler, **options: Any) -> Any:
    """Create the interceptor for *advice_type* wrapping *handler*."""
    try:
        interceptor_cls = ADVICE_INTERCEPTORS[advice_type]
    except KeyError:
        raise ValueError(f"Unknown advice type '{advice_type}'") from None
    return interceptor_cls(handler, **options)
