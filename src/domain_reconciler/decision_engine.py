"""
Decision Engine for domain lifecycle management.

This module decides, from the caller's desired settings and the registrar's
current record of a domain, whether the domain must be created, renewed,
reactivated, or left alone. Rules are evaluated in a fixed precedence:

1. Domain absent from the account (or a name mismatch) -> CREATE
2. Renewal disabled (min_days_remaining <= 0) -> SKIP
3. Domain reported expired -> REACTIVATE
4. Fewer than min_days_remaining whole days left -> RENEW
5. Otherwise -> SKIP

Expiry is always compared in UTC. The engine is a pure function of its
inputs; the current time can be injected.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .domain_validator import same_domain
from .enums import LifecycleDecision
from .models import DomainDescriptor, RemoteDomainSnapshot, ensure_utc

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class DecisionResult:
    """A lifecycle decision together with what led to it."""

    decision: LifecycleDecision
    reason: str
    days_remaining: Optional[int] = None


def days_remaining(expires_at: datetime, now: Optional[datetime] = None) -> int:
    """
    Whole days left until expiry, floored (negative once expired).

    Args:
        expires_at: Expiry timestamp (naive values are taken as UTC)
        now: Current time, defaults to datetime.now(timezone.utc)
    """
    now = ensure_utc(now) or datetime.now(timezone.utc)
    delta = ensure_utc(expires_at) - now
    return math.floor(delta.total_seconds() / SECONDS_PER_DAY)


class DecisionEngine:
    """
    Lifecycle decision engine.

    Reactivation always takes precedence over renewal once a domain has
    lapsed: an expired registration follows a different registrar flow
    and pricing than a renewal.
    """

    def decide(
        self,
        descriptor: DomainDescriptor,
        snapshot: RemoteDomainSnapshot,
        now: Optional[datetime] = None,
    ) -> LifecycleDecision:
        """
        Decide the lifecycle action for a domain.

        Args:
            descriptor: Desired lifecycle settings
            snapshot: Registrar's current record of the domain
            now: Optional current time for deterministic evaluation

        Returns:
            LifecycleDecision
        """
        return self.explain(descriptor, snapshot, now).decision

    def explain(
        self,
        descriptor: DomainDescriptor,
        snapshot: RemoteDomainSnapshot,
        now: Optional[datetime] = None,
    ) -> DecisionResult:
        """Same as decide(), returning the reason and days remaining as well."""
        if not snapshot.exists:
            return DecisionResult(
                LifecycleDecision.CREATE, "domain not found in account"
            )

        if snapshot.name is not None and not same_domain(snapshot.name, descriptor.name):
            return DecisionResult(
                LifecycleDecision.CREATE,
                f"lookup returned {snapshot.name!r} instead of {descriptor.name!r}",
            )

        if not descriptor.renewal_enabled:
            return DecisionResult(LifecycleDecision.SKIP, "renewal disabled")

        if snapshot.expired:
            return DecisionResult(LifecycleDecision.REACTIVATE, "domain expired")

        if snapshot.expires_at is None:
            # Without an expiry date there is nothing to compare against
            return DecisionResult(LifecycleDecision.SKIP, "expiry date unknown")

        remaining = days_remaining(snapshot.expires_at, now)
        if remaining < descriptor.min_days_remaining:
            return DecisionResult(
                LifecycleDecision.RENEW,
                f"{remaining} day(s) remaining, below {descriptor.min_days_remaining}",
                remaining,
            )

        return DecisionResult(
            LifecycleDecision.SKIP,
            f"{remaining} day(s) remaining",
            remaining,
        )

    def requires_renewal(
        self,
        descriptor: DomainDescriptor,
        expires_at: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Plan-time check whether a renewal pass is due, from a stored expiry date.

        Uses the same threshold as decide(); False when renewal is disabled
        or the expiry date is unknown.
        """
        if not descriptor.renewal_enabled or expires_at is None:
            return False
        return days_remaining(expires_at, now) < descriptor.min_days_remaining
