"""Failed-login lockout decisions.

The policy is pure: it reads an account's counters and a timestamp and
returns what the next state should be. Persisting that state is the
authenticator's job.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from .account import Account


@dataclass(frozen=True, slots=True)
class FailureOutcome:
    """Account state after one more failed password check."""

    failed_attempts: int
    locked_until: datetime | None
    attempts_remaining: int

    @property
    def locked(self) -> bool:
        return self.locked_until is not None


@dataclass(frozen=True, slots=True)
class LockoutPolicy:
    max_attempts: int = 5
    lock_duration: timedelta = timedelta(minutes=10)

    def is_locked(self, account: Account, now: datetime) -> bool:
        return account.account_locked_until is not None and account.account_locked_until > now

    def minutes_remaining(self, account: Account, now: datetime) -> int:
        """Whole minutes (rounded up) until the lock window closes; 0 when unlocked."""
        if not self.is_locked(account, now):
            return 0
        seconds = (account.account_locked_until - now).total_seconds()
        return math.ceil(seconds / 60)

    def register_failure(self, account: Account, now: datetime) -> FailureOutcome:
        # An expired lock does not reset the counter; only a successful login does.
        attempts = account.failed_login_attempts + 1
        if attempts >= self.max_attempts:
            return FailureOutcome(
                failed_attempts=attempts,
                locked_until=now + self.lock_duration,
                attempts_remaining=0,
            )
        return FailureOutcome(
            failed_attempts=attempts,
            locked_until=None,
            attempts_remaining=self.max_attempts - attempts,
        )

    @property
    def lock_minutes(self) -> int:
        return math.ceil(self.lock_duration.total_seconds() / 60)
