"""Reconnection backoff policy for the AMI session engine.

The delay starts at a fixed base when a disconnect episode begins, grows by a
constant factor on every consecutive failed attempt, and never exceeds the
configured cap.
"""

from __future__ import annotations

from ami_client import const


class ReconnectBackoff:
    """Exponential backoff state for reconnection attempts.

    Usage:
        >>> backoff = ReconnectBackoff(base_delay_seconds=1.0, factor=2.0, max_delay_seconds=5.0)
        >>> [backoff.next_delay() for _ in range(5)]
        [1.0, 2.0, 4.0, 5.0, 5.0]
        >>> backoff.reset()
        >>> backoff.next_delay()
        1.0
    """

    def __init__(
        self,
        base_delay_seconds: float = const.DEFAULT_RECONNECT_BASE_DELAY,
        factor: float = const.DEFAULT_RECONNECT_FACTOR,
        max_delay_seconds: float = const.DEFAULT_RECONNECT_MAX_DELAY,
    ):
        """Initialize backoff policy.

        Args:
            base_delay_seconds: Delay before the first attempt of an episode
            factor: Multiplier applied after each failed attempt (must be > 1)
            max_delay_seconds: Maximum delay cap

        Raises:
            ValueError: If the parameters cannot produce a growing, capped delay

        """
        if base_delay_seconds <= 0:
            msg = f"base_delay_seconds must be positive, got {base_delay_seconds}"
            raise ValueError(msg)
        if factor <= 1:
            msg = f"factor must be greater than 1, got {factor}"
            raise ValueError(msg)
        if max_delay_seconds < base_delay_seconds:
            msg = f"max_delay_seconds ({max_delay_seconds}) is below base_delay_seconds ({base_delay_seconds})"
            raise ValueError(msg)

        self.base_delay_seconds = base_delay_seconds
        self.factor = factor
        self.max_delay_seconds = max_delay_seconds
        self.current_delay_seconds = base_delay_seconds
        self.attempts = 0

    def next_delay(self) -> float:
        """Return the delay for the next attempt and advance the state."""
        delay = self.current_delay_seconds
        self.current_delay_seconds = min(delay * self.factor, self.max_delay_seconds)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        """Start a new disconnect episode at the base delay."""
        self.current_delay_seconds = self.base_delay_seconds
        self.attempts = 0

    def __repr__(self) -> str:
        """String representation of backoff state."""
        return (
            f"ReconnectBackoff(base_delay={self.base_delay_seconds}s, "
            f"factor={self.factor}, "
            f"max_delay={self.max_delay_seconds}s, "
            f"current={self.current_delay_seconds}s)"
        )
