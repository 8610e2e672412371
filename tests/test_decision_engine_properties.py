"""
Property-based tests for the Decision Engine module.

Uses Hypothesis to verify the lifecycle precedence: missing or mismatched
domains are created, disabled renewal skips, expired domains are
reactivated, and renewal happens strictly below the day threshold.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from domain_reconciler.decision_engine import DecisionEngine, days_remaining
from domain_reconciler.enums import LifecycleDecision
from domain_reconciler.models import DomainDescriptor, RemoteDomainSnapshot

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@st.composite
def descriptor_strategy(draw, renewal_enabled=None) -> DomainDescriptor:
    """Generate descriptors, optionally constrained to renewal on or off."""
    if renewal_enabled is None:
        min_days = draw(st.integers(min_value=-30, max_value=365))
    elif renewal_enabled:
        min_days = draw(st.integers(min_value=1, max_value=365))
    else:
        min_days = draw(st.integers(min_value=-30, max_value=0))
    return DomainDescriptor(
        name="example.com",
        years=draw(st.integers(min_value=1, max_value=10)),
        min_days_remaining=min_days,
        auto_renew=draw(st.booleans()),
        max_price=draw(st.one_of(st.none(), st.floats(min_value=0, max_value=1000))),
    )


expiry_offsets = st.floats(min_value=-400, max_value=800, allow_nan=False)


class TestCreateDecision:
    """Domains missing from the account, or looked up under another name, are created."""

    @given(descriptor=descriptor_strategy())
    @settings(max_examples=100)
    def test_missing_domain_is_created(self, descriptor: DomainDescriptor) -> None:
        engine = DecisionEngine()
        snapshot = RemoteDomainSnapshot.missing()
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.CREATE

    @given(
        descriptor=descriptor_strategy(),
        expired=st.booleans(),
        offset=expiry_offsets,
    )
    @settings(max_examples=100)
    def test_name_mismatch_is_created(
        self, descriptor: DomainDescriptor, expired: bool, offset: float
    ) -> None:
        engine = DecisionEngine()
        snapshot = RemoteDomainSnapshot(
            exists=True,
            name="other-example.com",
            expired=expired,
            expires_at=NOW + timedelta(days=offset),
        )
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.CREATE

    def test_name_comparison_ignores_case_and_root_dot(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="Example.COM", min_days_remaining=30)
        snapshot = RemoteDomainSnapshot(
            exists=True,
            name="example.com.",
            expires_at=NOW + timedelta(days=400),
        )
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.SKIP

    def test_unknown_remote_name_is_not_a_mismatch(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=30)
        snapshot = RemoteDomainSnapshot(
            exists=True, name=None, expires_at=NOW + timedelta(days=5)
        )
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.RENEW


class TestRenewalDisabled:
    """Disabled renewal wins over expiry and the day threshold."""

    @given(
        descriptor=descriptor_strategy(renewal_enabled=False),
        expired=st.booleans(),
        offset=expiry_offsets,
    )
    @settings(max_examples=100)
    def test_disabled_renewal_skips(
        self, descriptor: DomainDescriptor, expired: bool, offset: float
    ) -> None:
        engine = DecisionEngine()
        snapshot = RemoteDomainSnapshot(
            exists=True,
            name=descriptor.name,
            expired=expired,
            expires_at=NOW + timedelta(days=offset),
        )
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.SKIP

    def test_zero_threshold_skips_expired_domain(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=0)
        snapshot = RemoteDomainSnapshot(exists=True, name="example.com", expired=True)
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.SKIP


class TestAutoRenewFlag:
    """auto_renew is carried as data; only the day threshold gates renewal."""

    def test_expired_domain_is_reactivated_without_auto_renew(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=30, auto_renew=False)
        snapshot = RemoteDomainSnapshot(exists=True, name="example.com", expired=True)
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.REACTIVATE

    def test_near_expiry_is_renewed_without_auto_renew(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=30, auto_renew=False)
        snapshot = RemoteDomainSnapshot(
            exists=True, name="example.com", expires_at=NOW + timedelta(days=10)
        )
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.RENEW
        assert engine.requires_renewal(descriptor, snapshot.expires_at, NOW)


class TestReactivateDecision:
    """An expired domain is reactivated, never renewed."""

    @given(
        descriptor=descriptor_strategy(renewal_enabled=True),
        offset=st.one_of(st.none(), expiry_offsets),
    )
    @settings(max_examples=100)
    def test_expired_domain_is_reactivated(self, descriptor: DomainDescriptor, offset) -> None:
        engine = DecisionEngine()
        snapshot = RemoteDomainSnapshot(
            exists=True,
            name=descriptor.name,
            expired=True,
            expires_at=None if offset is None else NOW + timedelta(days=offset),
        )
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.REACTIVATE


class TestRenewThreshold:
    """Renew strictly below the threshold, skip at or above it."""

    @given(
        descriptor=descriptor_strategy(renewal_enabled=True),
        offset=expiry_offsets,
    )
    @settings(max_examples=200)
    def test_threshold_matches_days_remaining(
        self, descriptor: DomainDescriptor, offset: float
    ) -> None:
        engine = DecisionEngine()
        expires_at = NOW + timedelta(days=offset)
        snapshot = RemoteDomainSnapshot(
            exists=True, name=descriptor.name, expired=False, expires_at=expires_at
        )

        decision = engine.decide(descriptor, snapshot, NOW)

        if days_remaining(expires_at, NOW) < descriptor.min_days_remaining:
            assert decision == LifecycleDecision.RENEW
        else:
            assert decision == LifecycleDecision.SKIP

    def test_ten_days_left_renews(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=30)
        snapshot = RemoteDomainSnapshot(
            exists=True, name="example.com", expires_at=NOW + timedelta(days=10)
        )
        result = engine.explain(descriptor, snapshot, NOW)
        assert result.decision == LifecycleDecision.RENEW
        assert result.days_remaining == 10

    def test_four_hundred_days_left_skips(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=30)
        snapshot = RemoteDomainSnapshot(
            exists=True, name="example.com", expires_at=NOW + timedelta(days=400)
        )
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.SKIP

    def test_exactly_threshold_days_skips(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=30)
        snapshot = RemoteDomainSnapshot(
            exists=True, name="example.com", expires_at=NOW + timedelta(days=30)
        )
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.SKIP

    def test_unknown_expiry_skips(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=30)
        snapshot = RemoteDomainSnapshot(exists=True, name="example.com", expires_at=None)
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.SKIP

    def test_naive_expiry_is_treated_as_utc(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com", min_days_remaining=30)
        naive = (NOW + timedelta(days=10)).replace(tzinfo=None)
        snapshot = RemoteDomainSnapshot(exists=True, name="example.com", expires_at=naive)
        assert engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.RENEW


class TestDaysRemaining:
    """Whole days are floored."""

    @given(hours=st.integers(min_value=-24 * 400, max_value=24 * 400))
    @settings(max_examples=100)
    def test_floor_of_elapsed_days(self, hours: int) -> None:
        remaining = days_remaining(NOW + timedelta(hours=hours), NOW)
        assert remaining == hours // 24

    def test_partial_day_is_floored(self) -> None:
        assert days_remaining(NOW + timedelta(days=29, hours=23), NOW) == 29


class TestRequiresRenewal:
    """Plan-time check agrees with decide() for active domains."""

    @given(
        descriptor=descriptor_strategy(),
        offset=expiry_offsets,
    )
    @settings(max_examples=100)
    def test_agrees_with_decide(self, descriptor: DomainDescriptor, offset: float) -> None:
        engine = DecisionEngine()
        expires_at = NOW + timedelta(days=offset)
        snapshot = RemoteDomainSnapshot(
            exists=True, name=descriptor.name, expired=False, expires_at=expires_at
        )
        expected = engine.decide(descriptor, snapshot, NOW) == LifecycleDecision.RENEW
        assert engine.requires_renewal(descriptor, expires_at, NOW) == expected

    def test_unknown_expiry_does_not_require_renewal(self) -> None:
        engine = DecisionEngine()
        descriptor = DomainDescriptor(name="example.com")
        assert engine.requires_renewal(descriptor, None, NOW) is False
