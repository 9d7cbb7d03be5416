# =============================================================================
# Result Type — Explicit Success / Failure Values
# =============================================================================
#
# Provider calls return `Result[T]` instead of raising, so that "this
# provider failed, try the next one" is a branch in the caller rather than
# an exception unwinding through the orchestrator.
#
# Usage:
#   outcome = await complete_safely(provider, name, ...)
#   if isinstance(outcome, Err):
#       logger.warning("fallback: %s", outcome.error)
#   else:
#       use(outcome.value)
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from copyaudit.services.errors import ProviderError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: ProviderError

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return str(self.error)


Result = Union[Ok[T], Err]
