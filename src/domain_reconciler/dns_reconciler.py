"""
DNS Reconciler for registrar-hosted records and nameserver delegation.

The registrar serves a domain in exactly one of two modes: hosted records,
or delegation to external nameservers. This module converges the remote side
to a desired state in either mode using overwrite reconciliation: the full
desired state is written in a single call, replacing whatever the registrar
held before. Anything not in the desired set is removed.

Record addresses are normalized before comparison and writing:
- CNAME, ALIAS, NS and MX addresses get a trailing dot (FQDN form)
- CAA iodef values are split into exactly three fields and the third one
  is wrapped in double quotes
- everything else passes through unchanged

Two records are the same record when hostname, type and normalized address
match exactly; priority and TTL are simply overwritten.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence

from .enums import DNSMode, EmailType, ErrorCode, RecordType
from .exceptions import InvalidRecordValue, ModeConflict
from .gateway import RegistrarGateway
from .models import DNSState, HostRecord
from .retry_manager import RetryManager

FQDN_RECORD_TYPES = frozenset({
    RecordType.CNAME,
    RecordType.ALIAS,
    RecordType.NS,
    RecordType.MX,
})

# Email routing modes that need a record of the same type to exist
EMAIL_TYPE_RECORD_TYPES = {
    EmailType.MX: RecordType.MX,
    EmailType.MXE: RecordType.MXE,
}

CAA_IODEF_TAG = "iodef"
PARKING_PAGE_ADDRESS = "parkingpage.namecheap.com."


@dataclass(frozen=True)
class RecordDiff:
    """Identity-based difference between a desired and a remote record set."""

    to_add: tuple[HostRecord, ...]
    to_remove: tuple[HostRecord, ...]
    unchanged: tuple[HostRecord, ...]

    @property
    def has_changes(self) -> bool:
        return bool(self.to_add or self.to_remove)


@dataclass(frozen=True)
class ReconcileResult:
    """What a reconcile pass wrote to the registrar."""

    mode: DNSMode
    reset_delegation: bool = False
    records_written: tuple[HostRecord, ...] = ()
    email_type_written: Optional[EmailType] = None
    nameservers_written: tuple[str, ...] = ()


def _invalid_value(address: str) -> InvalidRecordValue:
    return InvalidRecordValue(
        code=ErrorCode.INVALID_RECORD_VALUE.value,
        message=f'Invalid value "{address}"',
        details={"address": address},
    )


def normalize_caa_iodef(address: str) -> str:
    """
    Normalize a CAA iodef value to `<flag> iodef "<url>"`.

    Raises:
        InvalidRecordValue: Not exactly three fields, or a partially quoted URL
    """
    fields = address.split()
    if len(fields) != 3:
        raise _invalid_value(address)

    value = fields[2]
    starts = value.startswith('"')
    ends = value.endswith('"')
    if not starts and not ends:
        fields[2] = f'"{value}"'
    elif not starts or not ends or len(value) < 2:
        raise _invalid_value(address)

    return " ".join(fields)


def normalize_address(record_type: RecordType, address: str) -> str:
    """Return the canonical form of a record address; idempotent."""
    if record_type in FQDN_RECORD_TYPES:
        return address if address.endswith(".") else address + "."
    if record_type == RecordType.CAA and CAA_IODEF_TAG in address:
        return normalize_caa_iodef(address)
    return address


def normalize_record(record: HostRecord) -> HostRecord:
    """Copy of the record with its address normalized."""
    normalized = normalize_address(record.record_type, record.address)
    if normalized == record.address:
        return record
    return replace(record, address=normalized)


def record_hash(record: HostRecord) -> str:
    """Identity key of a record: hostname, type and normalized address."""
    address = normalize_address(record.record_type, record.address)
    return f"[{record.hostname}:{record.record_type.value}:{address}]"


def _remote_hash(record: HostRecord) -> str:
    # Remote values are whatever the registrar stored; never fail on them
    try:
        return record_hash(record)
    except InvalidRecordValue:
        return f"[{record.hostname}:{record.record_type.value}:{record.address}]"


def dedupe_records(records: Iterable[HostRecord]) -> list[HostRecord]:
    """Collapse records with the same identity; the last one wins, first position kept."""
    by_hash: dict[str, HostRecord] = {}
    for record in records:
        by_hash[record_hash(record)] = record
    return list(by_hash.values())


def resolve_email_type(
    records: Sequence[HostRecord],
    email_type: Optional[EmailType],
) -> EmailType:
    """
    Drop an MX / MXE email type that no remaining record supports.

    Used when the caller gave no explicit email type and the remote one is
    carried over: leaving MX routing on without any MX record would keep a
    dangling email mode on the registrar.
    """
    if email_type is None:
        return EmailType.NONE

    required = EMAIL_TYPE_RECORD_TYPES.get(email_type)
    if required is None:
        return email_type

    if any(record.record_type == required for record in records):
        return email_type
    return EmailType.NONE


def filter_default_parking_records(
    records: Iterable[HostRecord],
    domain: str,
) -> list[HostRecord]:
    """Remove the parking records the registrar adds to freshly registered domains."""
    filtered = []
    for record in records:
        if (
            record.record_type == RecordType.CNAME
            and record.hostname == "www"
            and record.address == PARKING_PAGE_ADDRESS
        ):
            continue
        if (
            record.record_type == RecordType.URL
            and record.hostname == "@"
            and record.address.startswith(f"http://www.{domain}")
        ):
            continue
        filtered.append(record)
    return filtered


def diff_records(
    desired: Iterable[HostRecord],
    remote: Iterable[HostRecord],
) -> RecordDiff:
    """Compare record sets by identity."""
    desired_by_hash = {record_hash(r): r for r in desired}
    remote_by_hash = {_remote_hash(r): r for r in remote}

    return RecordDiff(
        to_add=tuple(r for h, r in desired_by_hash.items() if h not in remote_by_hash),
        to_remove=tuple(r for h, r in remote_by_hash.items() if h not in desired_by_hash),
        unchanged=tuple(r for h, r in desired_by_hash.items() if h in remote_by_hash),
    )


class DNSReconciler:
    """
    Converges a domain's DNS on the registrar to a desired state.

    Delegated mode (nameservers given) overwrites the nameserver list.
    Hosted mode clears any active delegation first, because the registrar
    rejects record writes while a domain is delegated, then overwrites the
    complete record set and email type.
    """

    def __init__(
        self,
        gateway: RegistrarGateway,
        retry_manager: Optional[RetryManager] = None,
    ) -> None:
        self._gateway = gateway
        self._retry = retry_manager or RetryManager()

    def reconcile(
        self,
        domain: str,
        records: Optional[Sequence[HostRecord]] = None,
        email_type: Optional[EmailType] = None,
        nameservers: Optional[Sequence[str]] = None,
    ) -> ReconcileResult:
        """
        Converge the domain's DNS to the desired state.

        Args:
            domain: Domain name
            records: Complete desired record set (hosted mode)
            email_type: Explicit email type; None carries the remote one over
            nameservers: Desired delegation (non-empty selects delegated mode)

        Returns:
            ReconcileResult describing what was written

        Raises:
            ModeConflict: Nameservers requested together with records or email type
            InvalidRecordValue: A record address cannot be normalized
            TransientFailure / RegistrarError: From registrar calls
        """
        records = list(records or [])
        nameservers = [ns.strip() for ns in (nameservers or []) if ns and ns.strip()]

        if nameservers and (records or email_type is not None):
            raise ModeConflict(
                code=ErrorCode.MODE_CONFLICT.value,
                message=(
                    f"domain [{domain}] cannot use delegated nameservers and "
                    "hosted records or email type at the same time"
                ),
                details={
                    "domain": domain,
                    "nameservers": nameservers,
                    "records": [r.describe() for r in records],
                    "email_type": email_type.value if email_type else None,
                },
            )

        if nameservers:
            self._retry.call(self._gateway.set_nameservers, domain, nameservers)
            return ReconcileResult(
                mode=DNSMode.DELEGATED,
                nameservers_written=tuple(nameservers),
            )

        # Validate every address before touching the registrar
        desired = dedupe_records(normalize_record(r) for r in records)

        status = self._retry.call(self._gateway.get_nameservers, domain)
        reset = False
        if status.delegated:
            self._retry.call(self._gateway.reset_nameservers_to_default, domain)
            reset = True

        if email_type is not None:
            effective = email_type
        elif desired:
            remote = self._retry.call(self._gateway.get_host_records, domain)
            effective = resolve_email_type(desired, remote.email_type)
        else:
            effective = EmailType.NONE

        self._retry.call(self._gateway.set_host_records, domain, desired, effective)
        return ReconcileResult(
            mode=DNSMode.HOSTED,
            reset_delegation=reset,
            records_written=tuple(desired),
            email_type_written=effective,
        )

    def read_dns(
        self,
        domain: str,
        desired_records: Sequence[HostRecord] = (),
    ) -> DNSState:
        """
        Report the domain's current DNS.

        Delegation status is read first; host records are meaningless while
        a domain is delegated and are only queried in hosted mode. Remote
        records that match a desired record by identity are reported with
        the desired address spelling, so callers do not see a difference
        that normalization alone explains.
        """
        status = self._retry.call(self._gateway.get_nameservers, domain)
        if status.delegated:
            return DNSState(
                mode=DNSMode.DELEGATED,
                records=(),
                email_type=None,
                nameservers=tuple(status.nameservers),
            )

        remote = self._retry.call(self._gateway.get_host_records, domain)
        desired_by_hash = {record_hash(r): r for r in desired_records}

        reported = []
        for record in filter_default_parking_records(remote.records, domain):
            match = desired_by_hash.get(_remote_hash(record))
            if match is not None and match.address != record.address:
                record = replace(record, address=match.address)
            reported.append(record)

        return DNSState(
            mode=DNSMode.HOSTED,
            records=tuple(reported),
            email_type=remote.email_type,
            nameservers=(),
        )

    def clear(
        self,
        domain: str,
        records_managed: bool,
        nameservers_managed: bool,
    ) -> Optional[DNSMode]:
        """
        Stop managing a domain's DNS.

        Managed records are removed with an empty overwrite (email type NONE);
        managed delegation is reset to the registrar's defaults.

        Returns:
            The mode that was cleared, or None if nothing was managed
        """
        if records_managed:
            self._retry.call(
                self._gateway.set_host_records, domain, [], EmailType.NONE
            )
            return DNSMode.HOSTED
        if nameservers_managed:
            self._retry.call(self._gateway.reset_nameservers_to_default, domain)
            return DNSMode.DELEGATED
        return None
