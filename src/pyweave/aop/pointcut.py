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
"""Pointcuts — selectors deciding which methods an advisor applies to.

A pointcut is a pair of predicates: a cheap ``class_filter`` over the target
type, evaluated first, and ``matches`` over an operation descriptor. Pointcuts
are stateless and their results are safe to cache.
"""

from __future__ import annotations

import fnmatch
import functools
import re
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from pyweave.aop.types import MethodDescriptor


@runtime_checkable
class Pointcut(Protocol):
    """Selector contract: type filter plus method matcher."""

    def class_filter(self, target_type: type) -> bool: ...
    def matches(self, method: MethodDescriptor, target_type: type) -> bool: ...


def qualified_type_name(target_type: type) -> str:
    """``module.ClassName`` as used by pointcut expressions."""
    return f"{target_type.__module__}.{target_type.__name__}"


def matches_pointcut(pattern: str, qualified_name: str) -> bool:
    """Check whether *qualified_name* matches a pointcut *pattern*.

    Pattern syntax
    --------------
    * ``*``  — matches exactly one dot-separated segment.
    * ``**`` — matches one or more segments (crosses dots).
    * Partial globs within a segment use ``*`` and ``?``,
      e.g. ``get_*`` matches ``get_order``.

    Examples
    --------
    >>> matches_pointcut("service.*.*", "service.OrderService.create")
    True
    >>> matches_pointcut("**.*Service.*", "a.b.c.OrderService.create")
    True
    >>> matches_pointcut("*.my_method", "a.b.MyClass.my_method")
    False
    """
    return _pattern_to_regex(pattern).fullmatch(qualified_name) is not None


def _segment_to_regex(seg: str) -> str:
    if seg == "**":
        return r"(?:[^.]+\.)*[^.]+"
    if seg == "*":
        return r"[^.]+"

    parts: list[str] = []
    for ch in seg:
        if ch == "*":
            parts.append("[^.]*")
        elif ch == "?":
            parts.append("[^.]")
        else:
            parts.append(re.escape(ch))
    return "".join(parts)


@functools.lru_cache(maxsize=512)
def _pattern_to_regex(pattern: str) -> re.Pattern[str]:
    return re.compile(r"\.".join(_segment_to_regex(seg) for seg in pattern.split(".")))


class ExpressionPointcut:
    """Matches ``module.Class.method`` against a dotted glob pattern.

    The type filter evaluates everything but the last segment against
    ``module.Class``; the method matcher evaluates the full pattern.
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression
        head, _, _ = expression.rpartition(".")
        self._type_pattern = head or None

    def class_filter(self, target_type: type) -> bool:
        if self._type_pattern is None:
            return True
        return matches_pointcut(self._type_pattern, qualified_type_name(target_type))

    def matches(self, method: MethodDescriptor, target_type: type) -> bool:
        return matches_pointcut(self.expression, f"{qualified_type_name(target_type)}.{method.name}")

    def __repr__(self) -> str:
        return f"ExpressionPointcut({self.expression!r})"


class NameMatchPointcut:
    """Matches method names against simple ``*`` patterns, for any type."""

    def __init__(self, *names: str) -> None:
        self.names = tuple(names)

    def class_filter(self, target_type: type) -> bool:
        return True

    def matches(self, method: MethodDescriptor, target_type: type) -> bool:
        return any(fnmatch.fnmatchcase(method.name, name) for name in self.names)

    def __repr__(self) -> str:
        return f"NameMatchPointcut{self.names!r}"


class MarkerPointcut:
    """Matches methods (or whole classes) carrying a marker attribute.

    With ``check_class=True`` a marker on the target class selects every
    public method of it.
    """

    def __init__(self, marker: str, check_class: bool = False) -> None:
        self.marker = marker
        self.check_class = check_class

    def class_filter(self, target_type: type) -> bool:
        if self.check_class and _has_marker(target_type, self.marker):
            return True
        return any(_has_marker(member, self.marker) for member in _members(target_type))

    def matches(self, method: MethodDescriptor, target_type: type) -> bool:
        if _has_marker(getattr(target_type, method.name, None), self.marker):
            return True
        return self.check_class and _has_marker(target_type, self.marker)

    def __repr__(self) -> str:
        return f"MarkerPointcut({self.marker!r})"


class _TruePointcut:
    def class_filter(self, target_type: type) -> bool:
        return True

    def matches(self, method: MethodDescriptor, target_type: type) -> bool:
        return True

    def __repr__(self) -> str:
        return "TRUE_POINTCUT"


TRUE_POINTCUT: Pointcut = _TruePointcut()


def _has_marker(obj: Any, marker: str) -> bool:
    return obj is not None and getattr(obj, marker, None) is not None


def _members(target_type: type) -> Iterable[Any]:
    for klass in target_type.__mro__:
        if klass is object:
            continue
        for value in vars(klass).values():
            yield getattr(value, "__func__", value)
