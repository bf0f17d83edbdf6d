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
"""Tests for binding TransactionProperties from configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from pyweave.core.config import Config
from pyweave.kernel.exceptions import ConfigurationException
from pyweave.transaction.config import SynchronizationPolicy, TransactionProperties


class TestTransactionProperties:
    def test_framework_defaults(self, tmp_path: Path) -> None:
        props = Config.from_sources(tmp_path).bind(TransactionProperties)
        assert props == TransactionProperties()

    def test_yaml_overrides(self, tmp_path: Path) -> None:
        (tmp_path / "pyweave.yaml").write_text(
            "pyweave:\n"
            "  transaction:\n"
            "    default_timeout: 20\n"
            "    rollback_on_commit_failure: true\n"
        )
        props = Config.from_sources(tmp_path).bind(TransactionProperties)

        assert props.default_timeout == 20
        assert props.rollback_on_commit_failure is True
        assert props.nested_transaction_allowed is True

    def test_profile_overlay(self, tmp_path: Path) -> None:
        (tmp_path / "pyweave.yaml").write_text("pyweave:\n  transaction:\n    synchronization: never\n")
        (tmp_path / "pyweave-prod.yaml").write_text(
            "pyweave:\n  transaction:\n    synchronization: on_actual_transaction\n"
        )
        props = Config.from_sources(tmp_path, active_profiles=["prod"]).bind(TransactionProperties)
        assert props.synchronization is SynchronizationPolicy.ON_ACTUAL_TRANSACTION

    def test_env_overrides_are_coerced(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PYWEAVE_TRANSACTION_DEFAULT_TIMEOUT", "45")
        monkeypatch.setenv("PYWEAVE_TRANSACTION_VALIDATE_EXISTING_TRANSACTION", "true")

        props = Config({}).bind(TransactionProperties)

        assert props.default_timeout == 45
        assert props.validate_existing_transaction is True

    def test_synchronization_is_bound_case_insensitively(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PYWEAVE_TRANSACTION_SYNCHRONIZATION", "NEVER")
        assert Config({}).bind(TransactionProperties).synchronization is SynchronizationPolicy.NEVER

    def test_unknown_synchronization_value_is_rejected(self) -> None:
        config = Config({"pyweave": {"transaction": {"synchronization": "sometimes"}}})

        with pytest.raises(ConfigurationException) as exc_info:
            config.bind(TransactionProperties)

        assert exc_info.value.code == "CONFIG_INVALID_VALUE"
        assert exc_info.value.context["key"] == "pyweave.transaction.synchronization"
