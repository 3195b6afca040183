"""Bounded fixed-delay reconnection policy."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of consulting the policy: retry after a delay, or give up."""

    retry: bool
    delay_seconds: float = 0.0

    @classmethod
    def retry_after(cls, delay_seconds: float) -> "RetryDecision":
        return cls(retry=True, delay_seconds=delay_seconds)

    @classmethod
    def give_up(cls) -> "RetryDecision":
        return cls(retry=False)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Stateless retry decision.

    Attributes:
        max_attempts: Attempt count at which the session gives up.
        delay_seconds: Constant delay before each reconnect.
    """

    max_attempts: int = 5
    delay_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")

    def decide(self, attempt_count: int) -> RetryDecision:
        """Retry while *attempt_count* is below the bound, otherwise give up."""
        if attempt_count < self.max_attempts:
            return RetryDecision.retry_after(self.delay_seconds)
        return RetryDecision.give_up()
