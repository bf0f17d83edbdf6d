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
"""Unified exception hierarchy for PyWeave.

All framework exceptions inherit from PyWeaveException, enabling unified
error handling across modules.

Categories:
- ConfigurationException: Invalid or contradictory declarations
- IllegalStateException: An operation was attempted in the wrong state
- InfrastructureException: Failures of an underlying resource or driver
"""

from __future__ import annotations


# =============================================================================
# Base Exception
# =============================================================================


class PyWeaveException(Exception):
    """Base exception for all PyWeave errors.

    Carries an optional error code and context dict for structured error data.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "TX_NEVER").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


# =============================================================================
# Configuration / State Exceptions
# =============================================================================


class ConfigurationException(PyWeaveException):
    """A declaration or setting is invalid or contradictory."""


class IllegalStateException(PyWeaveException):
    """An operation was attempted while the runtime is in the wrong state."""


# =============================================================================
# Infrastructure Exceptions
# =============================================================================


class InfrastructureException(PyWeaveException):
    """Infrastructure failures: database drivers, connections, external resources."""
