"""
Core Type Definitions for the Client State Layer

Implements Result/Either monads for zero-exception control flow at the
storage seam, plus the timestamp type used for record ordering.

Design Principles:
- Never use null for absence at a fallible seam (use Result)
- Storage adapters return Err instead of raising
- Timestamps are integers; milliseconds on the wire, nanoseconds internally
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Literal,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.
    
    Immutable container for successful computation results.
    """
    
    value: T
    
    def is_ok(self) -> Literal[True]:
        return True
    
    def is_err(self) -> Literal[False]:
        return False
    
    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value
    
    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value
    
    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))
    
    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)
    
    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.
    
    Carries full error context for exhaustive handling.
    """
    
    error: E
    
    def is_ok(self) -> Literal[False]:
        return False
    
    def is_err(self) -> Literal[True]:
        return True
    
    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.
        
        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")
    
    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default
    
    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self
    
    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        """Propagate error through monadic chain."""
        return self
    
    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP WITH NANOSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    High-precision timestamp for event ordering.
    
    Stores nanoseconds since Unix epoch. History records persist the
    millisecond view (``millis``) to stay compatible with browser-era
    payloads.
    """
    
    nanos: int
    
    NANOS_PER_SECOND: ClassVar[int] = 1_000_000_000
    NANOS_PER_MILLI: ClassVar[int] = 1_000_000
    
    @classmethod
    def now(cls) -> Timestamp:
        """Capture current wall-clock time."""
        return cls(nanos=time.time_ns())
    
    @classmethod
    def from_millis(cls, millis: int) -> Timestamp:
        return cls(nanos=millis * cls.NANOS_PER_MILLI)

    @property
    def millis(self) -> int:
        """Convert to milliseconds (truncating)."""
        return self.nanos // self.NANOS_PER_MILLI
    
    def elapsed_millis(self) -> float:
        """Milliseconds elapsed since this timestamp."""
        return (time.time_ns() - self.nanos) / self.NANOS_PER_MILLI
    
    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"


def now_millis() -> int:
    """Default wall clock for record creation (ms since epoch)."""
    return Timestamp.now().millis
