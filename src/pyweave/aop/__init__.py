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
"""Aspect-Oriented Programming support for PyWeave."""

from pyweave.aop.advice import (
    AfterAdviceInterceptor,
    AfterReturningAdviceInterceptor,
    AfterThrowingAdviceInterceptor,
    AroundAdviceInterceptor,
    BeforeAdviceInterceptor,
)
from pyweave.aop.chain import ChainResolver
from pyweave.aop.decorators import (
    AdviceDeclaration,
    advice_of,
    after,
    after_returning,
    after_throwing,
    around,
    aspect,
    before,
)
from pyweave.aop.invocation import current_proxy, invoke
from pyweave.aop.pointcut import (
    TRUE_POINTCUT,
    ExpressionPointcut,
    MarkerPointcut,
    NameMatchPointcut,
    Pointcut,
    matches_pointcut,
)
from pyweave.aop.registry import Advisor, AdvisorRegistry
from pyweave.aop.types import JoinPoint, MethodDescriptor, MethodInterceptor
from pyweave.aop.weaver import AopProxy, unwrap, weave_bean

__all__ = [
    "AdviceDeclaration",
    "Advisor",
    "AdvisorRegistry",
    "AfterAdviceInterceptor",
    "AfterReturningAdviceInterceptor",
    "AfterThrowingAdviceInterceptor",
    "AopProxy",
    "AroundAdviceInterceptor",
    "BeforeAdviceInterceptor",
    "ChainResolver",
    "ExpressionPointcut",
    "JoinPoint",
    "MarkerPointcut",
    "MethodDescriptor",
    "MethodInterceptor",
    "NameMatchPointcut",
    "Pointcut",
    "TRUE_POINTCUT",
    "advice_of",
    "after",
    "after_returning",
    "after_throwing",
    "around",
    "aspect",
    "before",
    "current_proxy",
    "invoke",
    "matches_pointcut",
    "unwrap",
    "weave_bean",
]
