"""
Reconciliation Driver for managed domains.

This module coordinates the core components for every configured domain:
- Domain name canonicalization
- Registrar lookups with retry
- Lifecycle decisions and provisioning (create, renew, reactivate)
- DNS reconciliation in hosted or delegated mode
- Persistence of the last known state
- Logging of every decision and failure

Each pass re-reads the registrar; nothing from a previous pass is trusted.
In simulation mode decisions and DNS differences are computed and logged
but no mutating registrar call is issued.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional, Sequence

from .audit_logger import AuditLogger
from .config import DNSConfig, DomainConfig, SystemConfig
from .decision_engine import DecisionEngine
from .dns_reconciler import DNSReconciler, ReconcileResult, RecordDiff, diff_records
from .domain_validator import DomainValidator
from .enums import DNSMode, LifecycleDecision, LogLevel
from .exceptions import PersistenceError, ReconcilerError
from .gateway import RegistrarGateway
from .models import DNSState, DomainRecordState, HostRecord, RemoteDomainSnapshot
from .provisioning import ContactCache, ProvisioningActions
from .retry_manager import RetryManager
from .state_store import StateStore


@dataclass
class DomainRunResult:
    """Outcome of a lifecycle pass for one domain."""

    domain: str
    decision: Optional[LifecycleDecision] = None
    reason: str = ""
    executed: bool = False
    outcome: Any = None  # CreateResult / RenewResult / ReactivateResult
    expires_at: Optional[datetime] = None
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)


@dataclass
class DNSRunResult:
    """Outcome of a DNS pass for one domain."""

    domain: str
    mode: Optional[DNSMode] = None
    diff: Optional[RecordDiff] = None
    executed: bool = False
    result: Optional[ReconcileResult] = None
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)


@dataclass
class DomainReport:
    """Current registrar view of a domain."""

    domain: str
    snapshot: RemoteDomainSnapshot
    dns: Optional[DNSState] = None


@dataclass
class RunSummary:
    """Results of a full pass over every configured domain."""

    domains: list[DomainRunResult] = field(default_factory=list)
    dns: list[DNSRunResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return (
            bool(self.errors)
            or any(r.failed for r in self.domains)
            or any(r.failed for r in self.dns)
        )


def _desired_records(dns: DNSConfig) -> list[HostRecord]:
    return list(dns.records) if not dns.nameservers else []


class ReconciliationDriver:
    """
    Drives lifecycle and DNS reconciliation for the configured domains.

    One driver owns one gateway; the contact cache may be shared between
    drivers that talk to the same registrar account.
    """

    COMPONENT = "driver"

    def __init__(
        self,
        gateway: RegistrarGateway,
        config: SystemConfig,
        state_store: Optional[StateStore] = None,
        logger: Optional[AuditLogger] = None,
        contact_cache: Optional[ContactCache] = None,
        retry_manager: Optional[RetryManager] = None,
    ) -> None:
        """
        Initialize the driver.

        Args:
            gateway: Registrar gateway implementation
            config: System configuration
            state_store: Optional state store for persistence
            logger: Optional audit logger
            contact_cache: Cache of the account's primary contact
            retry_manager: Retry policy (defaults to one built from config.retry)
        """
        self._gateway = gateway
        self._config = config
        self._state_store = state_store
        self._logger = logger
        self._retry = retry_manager or RetryManager(config.retry)
        self._validator = DomainValidator()
        self._decision_engine = DecisionEngine()
        self._provisioning = ProvisioningActions(gateway, self._retry, contact_cache)
        self._dns = DNSReconciler(gateway, self._retry)

    @property
    def config(self) -> SystemConfig:
        return self._config

    @property
    def simulation_mode(self) -> bool:
        return self._config.simulation_mode

    def plan(self, domain_config: DomainConfig) -> DomainRunResult:
        """Look the domain up and decide, without acting."""
        return self._lifecycle(domain_config, execute=False)

    def apply_domain(self, domain_config: DomainConfig) -> DomainRunResult:
        """Look the domain up, decide, and carry the decision out."""
        return self._lifecycle(domain_config, execute=not self.simulation_mode)

    def _lifecycle(self, domain_config: DomainConfig, execute: bool) -> DomainRunResult:
        descriptor = domain_config.descriptor
        result = DomainRunResult(domain=descriptor.name)

        try:
            domain = self._validator.canonicalize(descriptor.name)
            result.domain = domain
            if domain != descriptor.name:
                descriptor = replace(descriptor, name=domain)

            snapshot = self._retry.call(self._gateway.lookup_domain, domain)
            explained = self._decision_engine.explain(descriptor, snapshot)
            result.decision = explained.decision
            result.reason = explained.reason
            result.expires_at = snapshot.expires_at

            self._log(LogLevel.INFO, f"{domain}: {explained.decision.value}", {
                "domain": domain,
                "decision": explained.decision.value,
                "reason": explained.reason,
                "days_remaining": explained.days_remaining,
                "simulation": not execute,
            })

            if not execute:
                return result

            if explained.decision == LifecycleDecision.SKIP:
                self._persist(
                    domain,
                    expiry_date=snapshot.expires_at.isoformat() if snapshot.expires_at else None,
                    last_decision=explained.decision.value,
                )
                return result

            result.outcome = self._provisioning.execute(
                explained.decision, descriptor, snapshot
            )
            result.executed = True

            refreshed = self._retry.call(self._gateway.lookup_domain, domain)
            result.expires_at = refreshed.expires_at
            self._log(LogLevel.INFO, f"{domain}: {explained.decision.value} done", {
                "domain": domain,
                "expires_at": refreshed.expires_at.isoformat() if refreshed.expires_at else None,
            })

            self._persist(
                domain,
                expiry_date=refreshed.expires_at.isoformat() if refreshed.expires_at else None,
                last_decision=explained.decision.value,
            )
        except ReconcilerError as e:
            result.errors.append(f"{e.code}: {e.message}")
            self._log_error(f"Lifecycle pass failed for {result.domain}", e, result.domain)

        return result

    def apply_dns(self, domain_config: DomainConfig) -> DNSRunResult:
        """Converge the domain's DNS; a domain without DNS settings is left alone."""
        descriptor = domain_config.descriptor
        dns = domain_config.dns
        result = DNSRunResult(domain=descriptor.name)
        if dns is None:
            return result

        try:
            domain = self._validator.canonicalize(descriptor.name)
            result.domain = domain
            desired = _desired_records(dns)
            result.mode = DNSMode.DELEGATED if dns.nameservers else DNSMode.HOSTED

            if result.mode == DNSMode.HOSTED:
                current = self._dns.read_dns(domain, desired)
                result.diff = diff_records(desired, current.records)
                self._log(LogLevel.INFO, f"{domain}: DNS diff", {
                    "domain": domain,
                    "current_mode": current.mode.value,
                    "add": [r.describe() for r in result.diff.to_add],
                    "remove": [r.describe() for r in result.diff.to_remove],
                    "simulation": self.simulation_mode,
                })

            if self.simulation_mode:
                return result

            result.result = self._dns.reconcile(
                domain,
                records=dns.records,
                email_type=dns.email_type,
                nameservers=dns.nameservers,
            )
            result.executed = True
            self._log(LogLevel.INFO, f"{domain}: DNS reconciled", {
                "domain": domain,
                "mode": result.result.mode.value,
                "reset_delegation": result.result.reset_delegation,
                "records": len(result.result.records_written),
            })

            written_email = result.result.email_type_written
            self._persist(
                domain,
                nameservers=list(result.result.nameservers_written),
                records=[r.to_dict() for r in result.result.records_written],
                email_type=written_email.value if written_email else None,
            )
        except ReconcilerError as e:
            result.errors.append(f"{e.code}: {e.message}")
            self._log_error(f"DNS pass failed for {result.domain}", e, result.domain)

        return result

    def clear_dns(self, domain_config: DomainConfig) -> DNSRunResult:
        """Release DNS management: empty the managed records or drop the delegation."""
        descriptor = domain_config.descriptor
        dns = domain_config.dns or DNSConfig()
        result = DNSRunResult(domain=descriptor.name)

        try:
            domain = self._validator.canonicalize(descriptor.name)
            result.domain = domain
            records_managed = bool(dns.records) or dns.email_type is not None
            nameservers_managed = bool(dns.nameservers)

            if self.simulation_mode:
                self._log(LogLevel.INFO, f"{domain}: DNS would be cleared", {
                    "domain": domain,
                    "records_managed": records_managed,
                    "nameservers_managed": nameservers_managed,
                })
                return result

            result.mode = self._dns.clear(domain, records_managed, nameservers_managed)
            result.executed = result.mode is not None
            self._persist(domain, nameservers=[], records=[], email_type=None)
        except ReconcilerError as e:
            result.errors.append(f"{e.code}: {e.message}")
            self._log_error(f"Clearing DNS failed for {result.domain}", e, result.domain)

        return result

    def read(
        self,
        domain: str,
        desired_records: Sequence[HostRecord] = (),
    ) -> DomainReport:
        """
        Report the registrar's current view of a domain.

        Raises:
            ValidationError: The domain name is malformed
            TransientFailure / RegistrarError: From registrar calls
        """
        domain = self._validator.canonicalize(domain)
        snapshot = self._retry.call(self._gateway.lookup_domain, domain)
        dns = None
        if snapshot.exists:
            dns = self._dns.read_dns(domain, desired_records)
        return DomainReport(domain=domain, snapshot=snapshot, dns=dns)

    def apply_all(self) -> RunSummary:
        """Run lifecycle and DNS passes for every configured domain."""
        summary = RunSummary()
        for domain_config in self._config.domains:
            domain_result = self.apply_domain(domain_config)
            summary.domains.append(domain_result)

            if domain_config.dns is None or domain_result.failed:
                continue
            # In a dry run a domain due for purchase has no DNS to read yet
            if self.simulation_mode and domain_result.decision == LifecycleDecision.CREATE:
                continue
            summary.dns.append(self.apply_dns(domain_config))

        error = self.save_state()
        if error:
            summary.errors.append(error)
        return summary

    def plan_all(self) -> list[DomainRunResult]:
        return [self.plan(domain_config) for domain_config in self._config.domains]

    def _persist(self, domain: str, **changes: Any) -> None:
        if self._state_store is None:
            return
        current = self._state_store.get_domain_state(domain) or DomainRecordState(domain=domain)
        for key, value in changes.items():
            setattr(current, key, value)
        self._state_store.update_domain_state(current)

    def save_state(self) -> Optional[str]:
        """
        Write pending state changes.

        Returns:
            An error description if the state could not be written, else None
        """
        if self._state_store is None or self._state_store.state is None:
            return None
        try:
            self._state_store.save()
        except PersistenceError as e:
            self._log_error("Failed to save state", e)
            return f"{e.code}: {e.message}"
        return None

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)

    def _log_error(
        self, message: str, error: Exception, domain: Optional[str] = None
    ) -> None:
        if self._logger:
            self._logger.log_error(self.COMPONENT, message, error, domain=domain)
