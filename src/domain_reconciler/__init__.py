"""
Domain Reconciler - keep registered domains and their DNS in the desired state.

This package decides and performs domain lifecycle actions (create, renew,
reactivate) against a registrar and converges hosted DNS records or
nameserver delegation to a declared configuration.
"""

__version__ = "0.1.0"

from .exceptions import (
    ReconcilerError,
    TransportError,
    TransientFailure,
    RegistrarError,
    NotFound,
    AlreadyExists,
    NotAvailable,
    OverBudget,
    RenewalRejected,
    ReactivationRejected,
    InvalidRecordValue,
    ModeConflict,
    ConfigurationError,
    PersistenceError,
    TamperingError,
    ValidationError,
)
from .enums import (
    DNSMode,
    EmailType,
    ErrorCode,
    LifecycleDecision,
    LogLevel,
    RecordType,
)
from .models import (
    AvailabilityResult,
    ContactAddress,
    CreateResult,
    DNSState,
    DomainDescriptor,
    DomainRecordState,
    HostRecord,
    HostRecordsResult,
    NameserverStatus,
    ReactivateResult,
    RemoteDomainSnapshot,
    RenewResult,
    StoredState,
)
from .config import (
    DNSConfig,
    DomainConfig,
    LoggingConfig,
    PersistenceConfig,
    RateLimitConfig,
    RateLimitRule,
    RegistrarConfig,
    RetryConfig,
    SystemConfig,
    load_registrar_config_from_env,
)
from .domain_validator import DomainValidator, same_domain
from .gateway import RegistrarGateway
from .retry_manager import RetryManager, RetryResult
from .rate_limiter import RateLimiter, RateLimitStatus
from .decision_engine import DecisionEngine, DecisionResult, days_remaining
from .provisioning import ContactCache, ProvisioningActions
from .dns_reconciler import (
    DNSReconciler,
    ReconcileResult,
    RecordDiff,
    normalize_address,
    record_hash,
    resolve_email_type,
)
from .state_store import StateStore
from .audit_logger import AuditLogger, LogEntry
from .namecheap_client import NamecheapClient
from .orchestrator import (
    DNSRunResult,
    DomainReport,
    DomainRunResult,
    ReconciliationDriver,
    RunSummary,
)
from .cli import (
    main as cli_main,
    create_parser,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "ReconcilerError",
    "TransportError",
    "TransientFailure",
    "RegistrarError",
    "NotFound",
    "AlreadyExists",
    "NotAvailable",
    "OverBudget",
    "RenewalRejected",
    "ReactivationRejected",
    "InvalidRecordValue",
    "ModeConflict",
    "ConfigurationError",
    "PersistenceError",
    "TamperingError",
    "ValidationError",
    # Enums
    "DNSMode",
    "EmailType",
    "ErrorCode",
    "LifecycleDecision",
    "LogLevel",
    "RecordType",
    # Models
    "AvailabilityResult",
    "ContactAddress",
    "CreateResult",
    "DNSState",
    "DomainDescriptor",
    "DomainRecordState",
    "HostRecord",
    "HostRecordsResult",
    "NameserverStatus",
    "ReactivateResult",
    "RemoteDomainSnapshot",
    "RenewResult",
    "StoredState",
    # Configuration
    "DNSConfig",
    "DomainConfig",
    "LoggingConfig",
    "PersistenceConfig",
    "RateLimitConfig",
    "RateLimitRule",
    "RegistrarConfig",
    "RetryConfig",
    "SystemConfig",
    "load_registrar_config_from_env",
    # Core
    "DomainValidator",
    "same_domain",
    "RegistrarGateway",
    "RetryManager",
    "RetryResult",
    "RateLimiter",
    "RateLimitStatus",
    "DecisionEngine",
    "DecisionResult",
    "days_remaining",
    "ContactCache",
    "ProvisioningActions",
    "DNSReconciler",
    "ReconcileResult",
    "RecordDiff",
    "normalize_address",
    "record_hash",
    "resolve_email_type",
    # Infrastructure
    "StateStore",
    "AuditLogger",
    "LogEntry",
    "NamecheapClient",
    # Driver
    "DNSRunResult",
    "DomainReport",
    "DomainRunResult",
    "ReconciliationDriver",
    "RunSummary",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
]
