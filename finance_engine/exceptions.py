"""Exceptions raised by the finance engine.

Every error raised here is recoverable by the caller: calculation helpers
prefer to skip a bad record over raising, so these surface only for
records with no usable identity or for a failed synchronization pass.
"""

from __future__ import annotations


class FinanceEngineError(Exception):
    """Base class for all engine errors."""


class InvalidRecordError(FinanceEngineError, ValueError):
    """A record handed to the engine cannot be used at all."""


class SynchronizationError(FinanceEngineError):
    """A system budget synchronization pass failed and may be retried."""

    def __init__(self, message: str, key=None):
        super().__init__(message)
        self.key = key
