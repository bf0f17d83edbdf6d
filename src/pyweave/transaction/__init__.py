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
"""Transaction propagation engine — manager, context store and declarative interceptor."""

from pyweave.transaction.attribute_source import (
    AnnotationTransactionAttributeSource,
    CompositeTransactionAttributeSource,
    NameMatchTransactionAttributeSource,
    TransactionAttributeSource,
)
from pyweave.transaction.config import SynchronizationPolicy, TransactionProperties
from pyweave.transaction.context import TransactionContext
from pyweave.transaction.decorators import transactional
from pyweave.transaction.definition import (
    DEFAULT_DEFINITION,
    TIMEOUT_DEFAULT,
    Isolation,
    Propagation,
    TransactionDefinition,
)
from pyweave.transaction.exceptions import (
    CannotCreateTransactionException,
    IllegalTransactionStateException,
    InvalidTimeoutException,
    NestedTransactionNotSupportedException,
    NoTransactionException,
    TransactionException,
    TransactionSystemException,
    UnexpectedRollbackException,
)
from pyweave.transaction.interceptor import (
    TransactionAttributeSourcePointcut,
    TransactionInterceptor,
    current_transaction_status,
    transaction_advisor,
)
from pyweave.transaction.manager import TransactionManager
from pyweave.transaction.ports.outbound import ResourceDriverPort
from pyweave.transaction.rules import NoRollbackRule, RollbackRule, TransactionAttribute
from pyweave.transaction.status import ResourceHolder, SuspendedResourcesHolder, TransactionStatus
from pyweave.transaction.synchronization import CompletionStatus, TransactionSynchronization

__all__ = [
    "AnnotationTransactionAttributeSource",
    "CannotCreateTransactionException",
    "CompletionStatus",
    "CompositeTransactionAttributeSource",
    "DEFAULT_DEFINITION",
    "IllegalTransactionStateException",
    "InvalidTimeoutException",
    "Isolation",
    "NameMatchTransactionAttributeSource",
    "NestedTransactionNotSupportedException",
    "NoRollbackRule",
    "NoTransactionException",
    "Propagation",
    "ResourceDriverPort",
    "ResourceHolder",
    "RollbackRule",
    "SuspendedResourcesHolder",
    "SynchronizationPolicy",
    "TIMEOUT_DEFAULT",
    "TransactionAttribute",
    "TransactionAttributeSource",
    "TransactionAttributeSourcePointcut",
    "TransactionContext",
    "TransactionDefinition",
    "TransactionException",
    "TransactionInterceptor",
    "TransactionManager",
    "TransactionProperties",
    "TransactionStatus",
    "TransactionSynchronization",
    "TransactionSystemException",
    "UnexpectedRollbackException",
    "current_transaction_status",
    "transaction_advisor",
    "transactional",
]
