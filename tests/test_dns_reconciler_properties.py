"""
Property-based tests for the DNS Reconciler module.

Covers address normalization, record identity, email type resolution,
overwrite reconciliation in hosted and delegated mode, and reading the
remote state back.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_reconciler.dns_reconciler import (
    DNSReconciler,
    diff_records,
    filter_default_parking_records,
    normalize_address,
    record_hash,
    resolve_email_type,
)
from domain_reconciler.enums import DNSMode, EmailType, RecordType
from domain_reconciler.exceptions import InvalidRecordValue, ModeConflict, TransientFailure
from domain_reconciler.models import HostRecord

from fake_registrar import FakeRegistrar, make_retry_manager, transport_error

DOMAIN = "example.com"

host_label = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=1, max_size=12)
hostnames = st.one_of(st.just("@"), st.just("www"), host_label)
fqdn = st.builds(
    lambda labels, dot: ".".join(labels) + ("." if dot else ""),
    st.lists(host_label, min_size=2, max_size=4),
    st.booleans(),
)
ipv4 = st.builds(
    lambda a, b, c, d: f"{a}.{b}.{c}.{d}",
    *[st.integers(min_value=0, max_value=255)] * 4,
)


@st.composite
def record_strategy(draw) -> HostRecord:
    """Generate host records with addresses valid for their type."""
    record_type = draw(st.sampled_from([
        RecordType.A, RecordType.CNAME, RecordType.MX, RecordType.NS,
        RecordType.TXT, RecordType.ALIAS, RecordType.CAA,
    ]))
    if record_type == RecordType.A:
        address = draw(ipv4)
    elif record_type == RecordType.TXT:
        address = draw(st.text(alphabet="abcdefghij=-_ ", min_size=1, max_size=30))
    elif record_type == RecordType.CAA:
        address = draw(st.one_of(
            st.builds(lambda d: f'0 issue "{d}"', fqdn),
            st.builds(lambda u: f"0 iodef mailto:{u}@example.com", host_label),
            st.builds(lambda u: f'128 iodef "mailto:{u}@example.com"', host_label),
        ))
    else:
        address = draw(fqdn)
    return HostRecord(
        hostname=draw(hostnames),
        record_type=record_type,
        address=address,
        priority=draw(st.integers(min_value=0, max_value=100)),
        ttl=draw(st.integers(min_value=60, max_value=60000)),
    )


def make_reconciler(registrar: FakeRegistrar) -> DNSReconciler:
    retry_manager, _ = make_retry_manager()
    return DNSReconciler(registrar, retry_manager)


class TestAddressNormalization:
    """FQDN types get a trailing dot, CAA iodef values get a quoted URL."""

    @given(record=record_strategy())
    @settings(max_examples=200)
    def test_normalization_is_idempotent(self, record: HostRecord) -> None:
        once = normalize_address(record.record_type, record.address)
        assert normalize_address(record.record_type, once) == once

    @given(
        record_type=st.sampled_from([RecordType.CNAME, RecordType.ALIAS, RecordType.NS, RecordType.MX]),
        address=fqdn,
    )
    @settings(max_examples=100)
    def test_fqdn_types_end_with_dot(self, record_type: RecordType, address: str) -> None:
        normalized = normalize_address(record_type, address)
        assert normalized.endswith(".")
        assert normalized.rstrip(".") == address.rstrip(".")

    @given(
        record_type=st.sampled_from([RecordType.A, RecordType.AAAA, RecordType.TXT, RecordType.URL]),
        address=st.text(min_size=1, max_size=30),
    )
    @settings(max_examples=100)
    def test_other_types_pass_through(self, record_type: RecordType, address: str) -> None:
        assert normalize_address(record_type, address) == address

    def test_caa_iodef_url_is_quoted(self) -> None:
        normalized = normalize_address(RecordType.CAA, "0 iodef mailto:security@example.com")
        assert normalized == '0 iodef "mailto:security@example.com"'

    def test_caa_iodef_already_quoted(self) -> None:
        address = '0 iodef "mailto:security@example.com"'
        assert normalize_address(RecordType.CAA, address) == address

    @pytest.mark.parametrize("address", [
        "0 iodef",
        "0 iodef mailto:a@example.com extra",
        '0 iodef "mailto:security@example.com',
        '0 iodef mailto:security@example.com"',
        '0 iodef "',
    ])
    def test_malformed_caa_iodef_is_rejected(self, address: str) -> None:
        with pytest.raises(InvalidRecordValue):
            normalize_address(RecordType.CAA, address)

    def test_caa_issue_passes_through(self) -> None:
        address = '0 issue "letsencrypt.org"'
        assert normalize_address(RecordType.CAA, address) == address


class TestRecordIdentity:
    """Identity is hostname, type and normalized address; priority and TTL are ignored."""

    @given(record=record_strategy(), ttl=st.integers(min_value=60, max_value=60000))
    @settings(max_examples=100)
    def test_ttl_and_priority_do_not_change_identity(self, record: HostRecord, ttl: int) -> None:
        other = HostRecord(
            hostname=record.hostname,
            record_type=record.record_type,
            address=record.address,
            priority=record.priority + 1,
            ttl=ttl,
        )
        assert record_hash(record) == record_hash(other)

    def test_trailing_dot_does_not_change_identity(self) -> None:
        a = HostRecord("www", RecordType.CNAME, "example.net")
        b = HostRecord("www", RecordType.CNAME, "example.net.")
        assert record_hash(a) == record_hash(b) == "[www:CNAME:example.net.]"

    def test_identity_is_case_sensitive(self) -> None:
        a = HostRecord("www", RecordType.TXT, "Value")
        b = HostRecord("www", RecordType.TXT, "value")
        assert record_hash(a) != record_hash(b)

    @given(
        desired=st.lists(record_strategy(), max_size=6),
        remote=st.lists(record_strategy(), max_size=6),
    )
    @settings(max_examples=100)
    def test_diff_partitions_by_identity(self, desired, remote) -> None:
        result = diff_records(desired, remote)
        remote_hashes = {record_hash(r) for r in remote}
        desired_hashes = {record_hash(r) for r in desired}

        assert {record_hash(r) for r in result.to_add} == desired_hashes - remote_hashes
        assert {record_hash(r) for r in result.unchanged} == desired_hashes & remote_hashes
        assert {record_hash(r) for r in result.to_remove} == remote_hashes - desired_hashes


class TestEmailTypeResolution:
    """MX / MXE routing is dropped when no matching record remains."""

    def test_mx_without_mx_record_becomes_none(self) -> None:
        records = [HostRecord("@", RecordType.A, "192.0.2.1")]
        assert resolve_email_type(records, EmailType.MX) == EmailType.NONE

    def test_mx_with_mx_record_is_kept(self) -> None:
        records = [HostRecord("@", RecordType.MX, "mail.example.com.")]
        assert resolve_email_type(records, EmailType.MX) == EmailType.MX

    def test_mxe_needs_mxe_record(self) -> None:
        records = [HostRecord("@", RecordType.MX, "mail.example.com.")]
        assert resolve_email_type(records, EmailType.MXE) == EmailType.NONE

    @given(
        email_type=st.sampled_from([EmailType.NONE, EmailType.FWD, EmailType.OX, EmailType.GMAIL]),
        records=st.lists(record_strategy(), max_size=4),
    )
    @settings(max_examples=50)
    def test_other_types_are_kept(self, email_type: EmailType, records) -> None:
        assert resolve_email_type(records, email_type) == email_type


class TestHostedReconcile:
    """Hosted mode writes the complete record set in one call."""

    def test_overwrite_replaces_remote_records(self) -> None:
        registrar = FakeRegistrar()
        registrar.hosts[DOMAIN] = [HostRecord("old", RecordType.A, "192.0.2.9")]
        reconciler = make_reconciler(registrar)
        desired = [
            HostRecord("@", RecordType.A, "192.0.2.1"),
            HostRecord("www", RecordType.CNAME, "example.com"),
        ]

        result = reconciler.reconcile(DOMAIN, records=desired)

        assert result.mode == DNSMode.HOSTED
        assert [r.address for r in registrar.hosts[DOMAIN]] == ["192.0.2.1", "example.com."]
        assert len(registrar.calls_to("set_host_records")) == 1

    def test_delegated_domain_is_reset_before_writing(self) -> None:
        registrar = FakeRegistrar()
        registrar.delegations[DOMAIN] = ["ns1.other.net", "ns2.other.net"]
        reconciler = make_reconciler(registrar)

        result = reconciler.reconcile(
            DOMAIN, records=[HostRecord("@", RecordType.A, "192.0.2.1")]
        )

        assert result.reset_delegation
        methods = [call[0] for call in registrar.calls]
        assert methods.index("reset_nameservers_to_default") < methods.index("set_host_records")
        assert not registrar.delegated(DOMAIN)

    def test_empty_desired_state_writes_empty_set(self) -> None:
        registrar = FakeRegistrar()
        registrar.hosts[DOMAIN] = [HostRecord("@", RecordType.MX, "mail.example.com.")]
        registrar.email_types[DOMAIN] = EmailType.MX
        reconciler = make_reconciler(registrar)

        result = reconciler.reconcile(DOMAIN)

        assert result.email_type_written == EmailType.NONE
        assert registrar.calls_to("set_host_records") == [
            ("set_host_records", DOMAIN, (), EmailType.NONE)
        ]

    def test_remote_mx_routing_dropped_with_last_mx_record(self) -> None:
        registrar = FakeRegistrar()
        registrar.hosts[DOMAIN] = [
            HostRecord("@", RecordType.MX, "mail.example.com."),
            HostRecord("@", RecordType.A, "192.0.2.1"),
        ]
        registrar.email_types[DOMAIN] = EmailType.MX
        reconciler = make_reconciler(registrar)

        result = reconciler.reconcile(
            DOMAIN, records=[HostRecord("@", RecordType.A, "192.0.2.1")]
        )

        assert result.email_type_written == EmailType.NONE
        assert registrar.email_types[DOMAIN] == EmailType.NONE

    def test_remote_email_type_kept_when_records_support_it(self) -> None:
        registrar = FakeRegistrar()
        registrar.email_types[DOMAIN] = EmailType.MX
        reconciler = make_reconciler(registrar)

        reconciler.reconcile(
            DOMAIN, records=[HostRecord("@", RecordType.MX, "mail.example.com", priority=5)]
        )

        assert registrar.email_types[DOMAIN] == EmailType.MX
        assert registrar.hosts[DOMAIN][0].priority == 5

    def test_explicit_email_type_is_written_as_given(self) -> None:
        registrar = FakeRegistrar()
        reconciler = make_reconciler(registrar)

        reconciler.reconcile(
            DOMAIN,
            records=[HostRecord("@", RecordType.A, "192.0.2.1")],
            email_type=EmailType.FWD,
        )

        assert registrar.email_types[DOMAIN] == EmailType.FWD
        assert registrar.calls_to("get_host_records") == []

    def test_invalid_record_fails_before_any_call(self) -> None:
        registrar = FakeRegistrar()
        reconciler = make_reconciler(registrar)

        with pytest.raises(InvalidRecordValue):
            reconciler.reconcile(
                DOMAIN, records=[HostRecord("@", RecordType.CAA, "0 iodef")]
            )

        assert registrar.calls == []

    def test_duplicate_identity_last_write_wins(self) -> None:
        registrar = FakeRegistrar()
        reconciler = make_reconciler(registrar)

        reconciler.reconcile(DOMAIN, records=[
            HostRecord("@", RecordType.A, "192.0.2.1", ttl=300),
            HostRecord("@", RecordType.A, "192.0.2.1", ttl=900),
        ])

        assert [r.ttl for r in registrar.hosts[DOMAIN]] == [900]

    def test_transport_failures_are_retried(self) -> None:
        registrar = FakeRegistrar()
        registrar.fail("set_host_records", transport_error(), transport_error())
        reconciler = make_reconciler(registrar)

        reconciler.reconcile(DOMAIN, records=[HostRecord("@", RecordType.A, "192.0.2.1")])

        assert len(registrar.calls_to("set_host_records")) == 3
        assert registrar.hosts[DOMAIN][0].address == "192.0.2.1"

    def test_exhausted_budget_raises_transient_failure(self) -> None:
        registrar = FakeRegistrar()
        registrar.fail("get_nameservers", *[transport_error() for _ in range(50)])
        reconciler = make_reconciler(registrar)

        with pytest.raises(TransientFailure):
            reconciler.reconcile(DOMAIN, records=[HostRecord("@", RecordType.A, "192.0.2.1")])

        assert registrar.calls_to("set_host_records") == []


class TestDelegatedReconcile:
    """Delegated mode overwrites the nameserver list."""

    def test_nameservers_are_written(self) -> None:
        registrar = FakeRegistrar()
        reconciler = make_reconciler(registrar)

        result = reconciler.reconcile(DOMAIN, nameservers=["ns1.other.net", " ns2.other.net "])

        assert result.mode == DNSMode.DELEGATED
        assert registrar.delegations[DOMAIN] == ["ns1.other.net", "ns2.other.net"]
        assert registrar.calls_to("set_host_records") == []

    def test_records_and_nameservers_conflict(self) -> None:
        registrar = FakeRegistrar()
        reconciler = make_reconciler(registrar)

        with pytest.raises(ModeConflict):
            reconciler.reconcile(
                DOMAIN,
                records=[HostRecord("@", RecordType.A, "192.0.2.1")],
                nameservers=["ns1.other.net"],
            )
        assert registrar.calls == []

    def test_email_type_and_nameservers_conflict(self) -> None:
        reconciler = make_reconciler(FakeRegistrar())
        with pytest.raises(ModeConflict):
            reconciler.reconcile(DOMAIN, email_type=EmailType.MX, nameservers=["ns1.other.net"])


class TestConvergence:
    """A second identical pass leaves the remote side unchanged."""

    @given(
        desired=st.lists(record_strategy(), max_size=8),
        initially_delegated=st.booleans(),
        email_type=st.one_of(st.none(), st.sampled_from(list(EmailType))),
    )
    @settings(max_examples=100)
    def test_hosted_reconcile_converges(self, desired, initially_delegated, email_type) -> None:
        registrar = FakeRegistrar()
        if initially_delegated:
            registrar.delegations[DOMAIN] = ["ns1.other.net"]
        reconciler = make_reconciler(registrar)

        reconciler.reconcile(DOMAIN, records=desired, email_type=email_type)
        first = (list(registrar.hosts[DOMAIN]), registrar.email_types[DOMAIN])
        reconciler.reconcile(DOMAIN, records=desired, email_type=email_type)
        second = (list(registrar.hosts[DOMAIN]), registrar.email_types[DOMAIN])

        assert first == second
        assert not registrar.delegated(DOMAIN)

    @given(desired=st.lists(record_strategy(), min_size=1, max_size=8))
    @settings(max_examples=50)
    def test_read_after_reconcile_has_no_difference(self, desired) -> None:
        registrar = FakeRegistrar()
        reconciler = make_reconciler(registrar)

        reconciler.reconcile(DOMAIN, records=desired)
        state = reconciler.read_dns(DOMAIN, desired)

        assert not diff_records(desired, state.records).has_changes


class TestReadDNS:
    """Delegation status is read first and decides what is reported."""

    def test_delegated_domain_reports_no_records(self) -> None:
        registrar = FakeRegistrar()
        registrar.hosts[DOMAIN] = [HostRecord("@", RecordType.A, "192.0.2.1")]
        reconciler = make_reconciler(registrar)
        reconciler.reconcile(DOMAIN, nameservers=["ns1.other.net", "ns2.other.net"])

        state = reconciler.read_dns(DOMAIN)

        assert state.mode == DNSMode.DELEGATED
        assert state.records == ()
        assert state.nameservers == ("ns1.other.net", "ns2.other.net")
        assert registrar.calls_to("get_host_records") == []

    def test_hosted_domain_reports_no_nameservers(self) -> None:
        registrar = FakeRegistrar()
        reconciler = make_reconciler(registrar)
        reconciler.reconcile(DOMAIN, records=[HostRecord("@", RecordType.A, "192.0.2.1")])

        state = reconciler.read_dns(DOMAIN)

        assert state.mode == DNSMode.HOSTED
        assert state.nameservers == ()
        assert [r.address for r in state.records] == ["192.0.2.1"]

    def test_nameservers_read_before_host_records(self) -> None:
        registrar = FakeRegistrar()
        make_reconciler(registrar).read_dns(DOMAIN)
        assert [call[0] for call in registrar.calls] == ["get_nameservers", "get_host_records"]

    def test_desired_spelling_is_reported(self) -> None:
        registrar = FakeRegistrar()
        registrar.hosts[DOMAIN] = [HostRecord("www", RecordType.CNAME, "target.example.net.")]
        desired = [HostRecord("www", RecordType.CNAME, "target.example.net")]

        state = make_reconciler(registrar).read_dns(DOMAIN, desired)

        assert state.records[0].address == "target.example.net"

    def test_parking_records_are_hidden(self) -> None:
        records = [
            HostRecord("www", RecordType.CNAME, "parkingpage.namecheap.com."),
            HostRecord("@", RecordType.URL, f"http://www.{DOMAIN}/?from=@"),
            HostRecord("@", RecordType.A, "192.0.2.1"),
        ]
        filtered = filter_default_parking_records(records, DOMAIN)
        assert [r.record_type for r in filtered] == [RecordType.A]


class TestClear:
    """Releasing DNS management removes what was managed."""

    def test_managed_records_are_emptied(self) -> None:
        registrar = FakeRegistrar()
        registrar.hosts[DOMAIN] = [HostRecord("@", RecordType.A, "192.0.2.1")]
        registrar.email_types[DOMAIN] = EmailType.FWD

        mode = make_reconciler(registrar).clear(DOMAIN, True, False)

        assert mode == DNSMode.HOSTED
        assert registrar.hosts[DOMAIN] == []
        assert registrar.email_types[DOMAIN] == EmailType.NONE

    def test_managed_delegation_is_reset(self) -> None:
        registrar = FakeRegistrar()
        registrar.delegations[DOMAIN] = ["ns1.other.net"]

        mode = make_reconciler(registrar).clear(DOMAIN, False, True)

        assert mode == DNSMode.DELEGATED
        assert not registrar.delegated(DOMAIN)

    def test_nothing_managed_makes_no_calls(self) -> None:
        registrar = FakeRegistrar()
        assert make_reconciler(registrar).clear(DOMAIN, False, False) is None
        assert registrar.calls == []
