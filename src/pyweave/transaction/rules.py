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
"""Rollback rules and the rule-based transaction attribute."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from pyweave.transaction.definition import TransactionDefinition


@dataclass(frozen=True)
class RollbackRule:
    """Roll back when the raised exception matches ``exception``.

    ``exception`` is either an exception type, matched against the raised
    exception's type hierarchy, or a name fragment matched against the
    qualified names along that hierarchy.
    """

    exception: type[BaseException] | str

    @property
    def rollback(self) -> bool:
        return True

    def depth(self, exc: BaseException) -> int:
        """Distance from the raised type to the matching ancestor; ``-1`` when none matches."""
        for index, klass in enumerate(type(exc).__mro__):
            if self._matches(klass):
                return index
        return -1

    def _matches(self, klass: type) -> bool:
        if isinstance(self.exception, str):
            qualified = f"{klass.__module__}.{klass.__qualname__}"
            return self.exception in qualified
        return klass is self.exception

    def __str__(self) -> str:
        name = self.exception if isinstance(self.exception, str) else self.exception.__qualname__
        prefix = "+" if self.rollback else "-"
        return f"{prefix}{name}"


@dataclass(frozen=True)
class NoRollbackRule(RollbackRule):
    """Commit despite a raised exception matching ``exception``."""

    @property
    def rollback(self) -> bool:
        return False


@dataclass(frozen=True)
class TransactionAttribute(TransactionDefinition):
    """A transaction definition plus the rules deciding rollback on exceptions.

    Attributes:
        rollback_rules: Rules consulted by :meth:`rollback_on`; the match
            closest to the raised type wins, the first declared wins ties.
        qualifier: Selects a specific transaction manager when several are
            registered.
    """

    rollback_rules: tuple[RollbackRule, ...] = ()
    qualifier: str | None = None

    def rollback_on(self, exc: BaseException) -> bool:
        """Decide whether *exc* rolls the unit of work back.

        Without a matching rule every exception rolls back.
        """
        winner: RollbackRule | None = None
        deepest = None
        for rule in self.rollback_rules:
            depth = rule.depth(exc)
            if depth >= 0 and (deepest is None or depth < deepest):
                deepest = depth
                winner = rule
        if winner is None:
            return True
        return winner.rollback

    def describe(self) -> str:
        parts = [super().describe()]
        parts.extend(str(rule) for rule in self.rollback_rules)
        return ",".join(parts)

    def with_name(self, name: str) -> TransactionAttribute:
        return dataclasses.replace(self, name=name)
