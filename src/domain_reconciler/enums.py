"""
Enumeration types for the domain reconciler.

These enums provide type-safe constants for lifecycle decisions, DNS record
types, email routing modes and error codes used throughout the system.
"""

from enum import Enum


class LifecycleDecision(Enum):
    """Action the lifecycle engine selects for a domain."""

    CREATE = "create"
    RENEW = "renew"
    REACTIVATE = "reactivate"
    SKIP = "skip"


class DNSMode(Enum):
    """Which side of the registrar's DNS is active for a domain."""

    HOSTED = "hosted"
    DELEGATED = "delegated"


class RecordType(Enum):
    """Host record types accepted by the registrar."""

    A = "A"
    AAAA = "AAAA"
    ALIAS = "ALIAS"
    CAA = "CAA"
    CNAME = "CNAME"
    MX = "MX"
    MXE = "MXE"
    NS = "NS"
    TXT = "TXT"
    URL = "URL"
    URL301 = "URL301"
    FRAME = "FRAME"


class EmailType(Enum):
    """Email routing mode configured on the registrar's hosted DNS."""

    NONE = "NONE"
    FWD = "FWD"
    MX = "MX"
    MXE = "MXE"
    OX = "OX"
    GMAIL = "GMAIL"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ErrorCode(Enum):
    """Machine-readable codes carried by every ReconcilerError."""

    TRANSIENT_FAILURE = "transient_failure"
    TRANSPORT_ERROR = "transport_error"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    NOT_AVAILABLE = "not_available"
    OVER_BUDGET = "over_budget"
    RENEWAL_REJECTED = "renewal_rejected"
    REACTIVATION_REJECTED = "reactivation_rejected"
    INVALID_RECORD_VALUE = "invalid_record_value"
    MODE_CONFLICT = "mode_conflict"
    REGISTRAR_ERROR = "registrar_error"
    PARSE_ERROR = "parse_error"
    CONFIGURATION_ERROR = "configuration_error"
    PERSISTENCE_ERROR = "persistence_error"
    HMAC_MISMATCH = "hmac_mismatch"
    EMPTY_INPUT = "empty_input"
    FORBIDDEN_CHARS = "forbidden_chars"
    INVALID_TLD = "invalid_tld"
    IDNA_ERROR = "idna_error"
