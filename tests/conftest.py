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
"""Shared fixtures: every test starts and ends with an empty transaction context."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from pyweave.transaction.context import TransactionContext


def _reset_transaction_context() -> None:
    for key in list(TransactionContext.get_resource_map()):
        TransactionContext.unbind_resource(key)
    TransactionContext.clear()


@pytest.fixture(autouse=True)
def clean_transaction_context() -> Iterator[None]:
    _reset_transaction_context()
    yield
    _reset_transaction_context()
