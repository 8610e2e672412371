"""
Data models for the domain reconciler.

This module defines the request-scoped value objects the core works with
(descriptors, remote snapshots, host records) as well as the response shapes
of the registrar gateway and the records persisted by the driver.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .enums import DNSMode, EmailType, ErrorCode, RecordType
from .exceptions import InvalidRecordValue

MIN_YEARS = 1
MAX_YEARS = 10

# Registrar-defined TTL bounds for host records
MIN_TTL = 60
MAX_TTL = 60000

DEFAULT_MX_PREF = 10
DEFAULT_TTL = 1799


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return a timezone-aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class DomainDescriptor:
    """Desired lifecycle settings for a single domain, owned by the caller."""

    name: str
    years: int = 1  # Years to purchase or renew
    min_days_remaining: int = 30  # <= 0 disables renewal
    auto_renew: bool = True
    max_price: Optional[float] = None  # Purchase price ceiling
    nameservers: tuple[str, ...] = ()  # Passed to the create call

    def __post_init__(self) -> None:
        if not MIN_YEARS <= self.years <= MAX_YEARS:
            raise ValueError(
                f"years must be between {MIN_YEARS} and {MAX_YEARS}, got {self.years}"
            )
        object.__setattr__(self, "nameservers", tuple(self.nameservers))

    @property
    def renewal_enabled(self) -> bool:
        """Whether the lifecycle engine may renew or reactivate this domain."""
        return self.min_days_remaining > 0


@dataclass(frozen=True)
class RemoteDomainSnapshot:
    """Registrar's view of a domain, fetched fresh on every pass."""

    exists: bool
    name: Optional[str] = None
    expired: bool = False
    expires_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "expires_at", ensure_utc(self.expires_at))

    @classmethod
    def missing(cls, name: Optional[str] = None) -> "RemoteDomainSnapshot":
        """Snapshot for a domain the account does not hold."""
        return cls(exists=False, name=name)


@dataclass(frozen=True)
class HostRecord:
    """A single hosted DNS record."""

    hostname: str
    record_type: RecordType
    address: str
    priority: int = DEFAULT_MX_PREF  # Only meaningful for MX
    ttl: int = DEFAULT_TTL

    def __post_init__(self) -> None:
        if not isinstance(self.record_type, RecordType):
            try:
                object.__setattr__(
                    self, "record_type", RecordType(str(self.record_type).upper())
                )
            except ValueError:
                raise InvalidRecordValue(
                    code=ErrorCode.INVALID_RECORD_VALUE.value,
                    message=f"Unsupported record type: {self.record_type}",
                    details={"hostname": self.hostname, "type": str(self.record_type)},
                ) from None
        if not MIN_TTL <= self.ttl <= MAX_TTL:
            raise InvalidRecordValue(
                code=ErrorCode.INVALID_RECORD_VALUE.value,
                message=f"TTL must be between {MIN_TTL} and {MAX_TTL}, got {self.ttl}",
                details={"hostname": self.hostname, "ttl": self.ttl},
            )

    def to_dict(self) -> dict:
        return {
            "hostname": self.hostname,
            "type": self.record_type.value,
            "address": self.address,
            "mx_pref": self.priority,
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HostRecord":
        return cls(
            hostname=data["hostname"],
            record_type=data["type"],
            address=data["address"],
            priority=int(data.get("mx_pref", DEFAULT_MX_PREF)),
            ttl=int(data.get("ttl", DEFAULT_TTL)),
        )

    def describe(self) -> str:
        """Short human-readable form used in error details."""
        return (
            f"{{hostname = {self.hostname}, type = {self.record_type.value}, "
            f"address = {self.address}}}"
        )


@dataclass(frozen=True)
class ContactAddress:
    """Account contact used for registrant, admin, tech and billing roles."""

    first_name: str
    last_name: str
    address: str
    city: str
    state: str
    postal_code: str
    country: str
    phone: str
    email: str
    organization: str = ""
    address2: str = ""


@dataclass(frozen=True)
class AvailabilityResult:
    """Result of an availability check."""

    domain: str
    available: bool
    premium_price: Optional[float] = None  # None or 0 when not premium

    @property
    def is_premium(self) -> bool:
        return bool(self.premium_price)


@dataclass(frozen=True)
class CreateResult:
    """Result of a domain create call."""

    domain: str
    registered: bool
    charged_amount: float = 0.0


@dataclass(frozen=True)
class RenewResult:
    """Result of a domain renew call."""

    domain: str
    renewed: bool


@dataclass(frozen=True)
class ReactivateResult:
    """Result of a domain reactivate call."""

    domain: str
    success: bool


@dataclass(frozen=True)
class HostRecordsResult:
    """Hosted records as reported by the registrar."""

    domain: str
    records: tuple[HostRecord, ...]
    email_type: EmailType = EmailType.NONE
    using_registrar_dns: bool = True


@dataclass(frozen=True)
class NameserverStatus:
    """Nameserver delegation status as reported by the registrar."""

    domain: str
    using_registrar_dns: bool
    nameservers: tuple[str, ...] = ()

    @property
    def delegated(self) -> bool:
        return not self.using_registrar_dns


@dataclass(frozen=True)
class DNSState:
    """DNS state reported for display and comparison."""

    mode: DNSMode
    records: tuple[HostRecord, ...] = ()
    email_type: Optional[EmailType] = None
    nameservers: tuple[str, ...] = ()


@dataclass
class DomainRecordState:
    """Last known state of a managed domain, persisted by the driver."""

    domain: str
    expiry_date: Optional[str] = None  # ISO 8601, UTC
    last_decision: Optional[str] = None
    nameservers: list[str] = field(default_factory=list)
    records: list[dict] = field(default_factory=list)
    email_type: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class StoredState:
    """Complete stored state with HMAC protection."""

    version: int
    domains: dict[str, DomainRecordState]
    last_updated: str
    hmac: str
