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
"""AOP core types — MethodDescriptor, JoinPoint and the MethodInterceptor protocol."""

from __future__ import annotations

import inspect
import typing
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class MethodDescriptor:
    """Structured description of an intercepted operation.

    Equality and hashing use ``(declaring_type, name)`` only, so descriptors
    can key caches regardless of how their annotations are spelled.

    Attributes:
        declaring_type: Class that defines the method (first in the MRO).
        name: Method name.
        parameter_types: Annotated parameter types, ``None`` where unannotated.
        return_type: Annotated return type, or ``None``.
    """

    declaring_type: type
    name: str
    parameter_types: tuple[Any, ...] = field(default=(), compare=False)
    return_type: Any = field(default=None, compare=False)

    @property
    def qualified_name(self) -> str:
        return f"{self.declaring_type.__module__}.{self.declaring_type.__qualname__}.{self.name}"

    def function(self) -> Any:
        """Return the raw function object as declared on :attr:`declaring_type`."""
        return self.declaring_type.__dict__.get(self.name)

    @classmethod
    def of(cls, target_type: type, name: str) -> MethodDescriptor:
        """Describe method *name* as seen from *target_type*."""
        declaring = next((k for k in target_type.__mro__ if name in vars(k)), target_type)
        raw = vars(declaring).get(name)
        func = raw.__func__ if isinstance(raw, (staticmethod, classmethod)) else raw
        if not callable(func):
            return cls(declaring, name)

        try:
            hints = typing.get_type_hints(func)
        except (NameError, TypeError, AttributeError):
            hints = {}
        try:
            params = list(inspect.signature(func).parameters.values())
        except (TypeError, ValueError):
            params = []
        if params and not isinstance(raw, staticmethod):
            params = params[1:]
        parameter_types = tuple(hints.get(p.name) for p in params)
        return cls(declaring, name, parameter_types, hints.get("return"))


@runtime_checkable
class MethodInterceptor(Protocol):
    """A behavior unit in an interception chain.

    ``invoke`` receives the shared :class:`JoinPoint`; calling
    ``join_point.proceed()`` runs the rest of the chain.
    """

    def invoke(self, join_point: JoinPoint) -> Any: ...


class JoinPoint:
    """The context of one intercepted call.

    Holds the target, the operation descriptor, the (replaceable) argument
    vector, the facade identity and a scratch ``attributes`` map shared by
    every interceptor of the call. A single forward cursor walks the chain:
    each :meth:`proceed` advances it and invokes the next interceptor, or the
    target method once the chain is exhausted.

    To run the remainder of the chain more than once (e.g. retry), take an
    :meth:`invocable_clone` before proceeding and proceed on the clone.
    """

    __slots__ = (
        "target",
        "method",
        "args",
        "kwargs",
        "proxy",
        "attributes",
        "return_value",
        "exception",
        "_chain",
        "_cursor",
    )

    def __init__(
        self,
        target: Any,
        method: MethodDescriptor,
        args: Sequence[Any],
        kwargs: dict[str, Any],
        proxy: Any,
        chain: Sequence[MethodInterceptor],
    ) -> None:
        self.target = target
        self.method = method
        self.args: list[Any] = list(args)
        self.kwargs: dict[str, Any] = dict(kwargs)
        self.proxy = proxy
        self.attributes: dict[str, Any] = {}
        self.return_value: Any = None
        self.exception: BaseException | None = None
        self._chain = tuple(chain)
        self._cursor = -1

    @property
    def method_name(self) -> str:
        return self.method.name

    @property
    def this(self) -> Any:
        """The facade the caller invoked (alias of :attr:`proxy`)."""
        return self.proxy

    def proceed(self, *args: Any, **kwargs: Any) -> Any:
        """Advance to the next interceptor, or call the target when exhausted.

        Positional/keyword arguments, when given, replace the argument
        vector before continuing.
        """
        if args or kwargs:
            self.args = list(args)
            self.kwargs = dict(kwargs)

        if self._cursor >= len(self._chain) - 1:
            return self.invoke_target()

        self._cursor += 1
        return self._chain[self._cursor].invoke(self)

    def invoke_target(self) -> Any:
        """Dispatch to the real method on the target with the current arguments."""
        return getattr(self.target, self.method.name)(*self.args, **self.kwargs)

    def invocable_clone(self, *args: Any, **kwargs: Any) -> JoinPoint:
        """Return an independently proceed-able copy positioned at this cursor.

        The clone shares target, method and proxy; it gets its own copy of
        the argument vector (or *args*/*kwargs* when given) and a shallow
        copy of :attr:`attributes`.
        """
        clone = JoinPoint.__new__(JoinPoint)
        clone.target = self.target
        clone.method = self.method
        clone.args = list(args) if (args or kwargs) else list(self.args)
        clone.kwargs = dict(kwargs) if (args or kwargs) else dict(self.kwargs)
        clone.proxy = self.proxy
        clone.attributes = dict(self.attributes)
        clone.return_value = None
        clone.exception = None
        clone._chain = self._chain
        clone._cursor = self._cursor
        return clone

    def __repr__(self) -> str:
        return f"JoinPoint({self.method.qualified_name}, cursor={self._cursor}/{len(self._chain)})"
