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
"""Invocation engine — runs a resolved chain against one call."""

from __future__ import annotations

import types
import typing
from collections.abc import Sequence
from contextvars import ContextVar
from typing import Any

from pyweave.aop.types import JoinPoint, MethodDescriptor, MethodInterceptor
from pyweave.kernel.exceptions import IllegalStateException

_current_proxy_var: ContextVar[Any] = ContextVar("pyweave_current_proxy", default=None)


def current_proxy() -> Any:
    """Return the facade of the call currently executing with an exposed proxy.

    Raises:
        IllegalStateException: If no exposed proxy is active.
    """
    proxy = _current_proxy_var.get()
    if proxy is None:
        raise IllegalStateException(
            "Cannot find current proxy: weave the target with expose_proxy=True "
            "and call this from within the intercepted method",
            code="AOP_NO_PROXY",
        )
    return proxy


def invoke(
    proxy: Any,
    target: Any,
    method: MethodDescriptor,
    args: Sequence[Any],
    kwargs: dict[str, Any],
    chain: Sequence[MethodInterceptor],
    *,
    expose_proxy: bool = False,
) -> Any:
    """Execute *chain* around ``target.<method>(*args, **kwargs)``.

    An empty chain calls the target directly. Errors from interceptors or
    the target propagate unchanged. When the target returns itself and the
    declared return type admits the facade, the facade is returned instead.
    """
    token = _current_proxy_var.set(proxy) if expose_proxy else None
    try:
        if not chain:
            result = getattr(target, method.name)(*args, **kwargs)
        else:
            result = JoinPoint(target, method, args, kwargs, proxy, chain).proceed()
    finally:
        if token is not None:
            _current_proxy_var.reset(token)

    if result is target and result is not proxy and _returns_proxy_compatible(method, proxy):
        return proxy
    return result


def _returns_proxy_compatible(method: MethodDescriptor, proxy: Any) -> bool:
    if method.return_type is None:
        return True
    return _admits(method.return_type, proxy)


def _admits(annotation: Any, proxy: Any) -> bool:
    if annotation is typing.Self:
        return True
    if isinstance(annotation, type):
        return isinstance(proxy, annotation)
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        return any(_admits(arg, proxy) for arg in typing.get_args(annotation) if arg is not type(None))
    return False
