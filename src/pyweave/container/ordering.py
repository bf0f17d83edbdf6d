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
"""Ordering — @order decorator and precedence constants for aspects and callbacks."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

T = TypeVar("T", bound=type)

HIGHEST_PRECEDENCE: int = -(2**31)
LOWEST_PRECEDENCE: int = 2**31 - 1

_ORDER_ATTR = "__pyweave_order__"


def order(value: int) -> Callable[[T], T]:
    """Set the precedence of an aspect or synchronization class.

    Lower value = higher priority (runs first on the way in).
    """

    def decorator(cls: T) -> T:
        setattr(cls, _ORDER_ATTR, value)
        return cls

    return decorator


def find_order(cls: type) -> int | None:
    """Return the explicit order declared on *cls*, or ``None`` if undeclared."""
    return getattr(cls, _ORDER_ATTR, None)


def get_order(cls: type, default: int = 0) -> int:
    """Get the order value for a class, falling back to *default*."""
    value = find_order(cls)
    return default if value is None else value
