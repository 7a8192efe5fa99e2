"""
Services Module - Reply pipeline services
=========================================

This module provides:
- Generative fallback invoker
- Response resolver
- Dispatcher (per-message orchestration)
"""

from .fallback import GenerativeFallback
from .responder import ResponseResolver, ReplyPlan, ReplyStep, StepKind, Outcome
from .dispatcher import Dispatcher, DispatchResult

__all__ = [
    "GenerativeFallback",
    "ResponseResolver",
    "ReplyPlan",
    "ReplyStep",
    "StepKind",
    "Outcome",
    "Dispatcher",
    "DispatchResult",
]
