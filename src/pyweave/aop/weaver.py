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
"""AOP weaver — fabricates facades that route public method calls through the chain."""

from __future__ import annotations

import functools
from typing import Any

from pyweave.aop.chain import ChainResolver
from pyweave.aop.invocation import invoke
from pyweave.aop.types import MethodDescriptor


class AopProxy:
    """Facade around a target object.

    Public callable attributes are returned as wrappers that resolve the
    interceptor chain for ``(method, type(target))`` and run it through
    :func:`~pyweave.aop.invocation.invoke`. Everything else is delegated to
    the target. ``isinstance(proxy, type(target))`` holds, so the facade can
    stand in wherever the target's type is expected.
    """

    __slots__ = ("_target", "_resolver", "_expose_proxy", "_descriptors")

    def __init__(self, target: Any, resolver: ChainResolver, *, expose_proxy: bool = False) -> None:
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_resolver", resolver)
        object.__setattr__(self, "_expose_proxy", expose_proxy)
        object.__setattr__(self, "_descriptors", {})

    @property  # type: ignore[misc]
    def __class__(self) -> type:
        return type(self._target)

    def __getattr__(self, name: str) -> Any:
        target = self._target
        attr = getattr(target, name)
        if name.startswith("_") or not callable(attr) or isinstance(attr, type):
            return attr

        descriptor = self._descriptor(name)
        resolver = self._resolver
        expose_proxy = self._expose_proxy
        proxy = self

        @functools.wraps(attr)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            chain = resolver.resolve(descriptor, type(target))
            return invoke(proxy, target, descriptor, args, kwargs, chain, expose_proxy=expose_proxy)

        return wrapper

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._target, name, value)

    def __delattr__(self, name: str) -> None:
        delattr(self._target, name)

    def __repr__(self) -> str:
        return f"<AopProxy for {self._target!r}>"

    def _descriptor(self, name: str) -> MethodDescriptor:
        descriptors: dict[str, MethodDescriptor] = self._descriptors
        descriptor = descriptors.get(name)
        if descriptor is None:
            descriptor = MethodDescriptor.of(type(self._target), name)
            descriptors[name] = descriptor
        return descriptor


def weave_bean(target: Any, resolver: ChainResolver, *, expose_proxy: bool = False) -> Any:
    """Return a facade for *target*, or *target* itself when nothing can apply.

    Uses the registry's cheap candidate check so types that carry no advice
    are never proxied.
    """
    if not resolver.registry.is_candidate(type(target)):
        return target
    return AopProxy(target, resolver, expose_proxy=expose_proxy)


def unwrap(obj: Any) -> Any:
    """Return the target behind a facade (or *obj* itself)."""
    if type(obj) is AopProxy:
        return object.__getattribute__(obj, "_target")
    return obj
