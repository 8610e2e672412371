"""
Provisioning actions for domain lifecycle decisions.

This module executes what the decision engine selects: purchasing a new
domain after availability and price-ceiling checks, renewing an existing
registration, or reactivating an expired one. Every registrar call goes
through the retry policy; calls that are not safe to repeat are confirmed
against the registrar before being retried.
"""

import threading
from typing import Callable, Optional, Sequence, TypeVar

from .domain_validator import same_domain
from .enums import ErrorCode, LifecycleDecision
from .exceptions import (
    AlreadyExists,
    ConfigurationError,
    NotAvailable,
    OverBudget,
    ReactivationRejected,
    RegistrarError,
    RenewalRejected,
)
from .gateway import RegistrarGateway
from .models import (
    AvailabilityResult,
    ContactAddress,
    CreateResult,
    DomainDescriptor,
    ReactivateResult,
    RemoteDomainSnapshot,
    RenewResult,
)
from .retry_manager import RetryManager

T = TypeVar("T")

PRICING_ACTION_REGISTER = "register"


class ContactCache:
    """
    Process-wide cache for the account's primary contact address.

    The address is immutable account data used only as input to domain
    creation. It is looked up at most once; concurrent first callers are
    serialized by a lock and failed lookups are not cached.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: Optional[ContactAddress] = None

    @property
    def cached(self) -> Optional[ContactAddress]:
        return self._value

    def get(self, loader: Callable[[], ContactAddress]) -> ContactAddress:
        """Return the cached address, calling loader() on first use."""
        value = self._value
        if value is not None:
            return value
        with self._lock:
            if self._value is None:
                self._value = loader()
            return self._value

    def store(self, value: ContactAddress) -> None:
        """Seed the cache; a second write is a programming error."""
        with self._lock:
            if self._value is not None:
                raise RuntimeError("contact address already cached")
            self._value = value


def product_for_domain(domain: str) -> str:
    """Pricing product name for a domain: its TLD in upper case (example.co.uk -> CO.UK)."""
    parts = domain.strip().rstrip(".").split(".", 1)
    if len(parts) != 2 or not parts[1]:
        raise ValueError(f"Domain has no TLD: {domain!r}")
    return parts[1].upper()


def _registrar_details(error: RegistrarError) -> dict:
    details = dict(error.details)
    details.setdefault("registrar_message", error.message)
    return details


class ProvisioningActions:
    """Create, renew and reactivate domains against the registrar."""

    def __init__(
        self,
        gateway: RegistrarGateway,
        retry_manager: Optional[RetryManager] = None,
        contact_cache: Optional[ContactCache] = None,
    ) -> None:
        self._gateway = gateway
        self._retry = retry_manager or RetryManager()
        self._contacts = contact_cache or ContactCache()

    @property
    def contact_cache(self) -> ContactCache:
        return self._contacts

    def execute(
        self,
        decision: LifecycleDecision,
        descriptor: DomainDescriptor,
        snapshot: Optional[RemoteDomainSnapshot] = None,
    ):
        """
        Carry out a lifecycle decision.

        Args:
            decision: Output of the decision engine
            descriptor: Desired lifecycle settings
            snapshot: Snapshot the decision was made from, used to confirm
                      renewals and reactivations after transport failures

        Returns:
            CreateResult, RenewResult, ReactivateResult, or None for SKIP
        """
        if decision == LifecycleDecision.CREATE:
            if descriptor.max_price is None:
                raise ConfigurationError(
                    code=ErrorCode.CONFIGURATION_ERROR.value,
                    message=f"max_price is required to purchase {descriptor.name}",
                    details={"domain": descriptor.name},
                )
            return self.create(
                descriptor.name,
                descriptor.years,
                descriptor.max_price,
                descriptor.nameservers,
            )
        if decision == LifecycleDecision.RENEW:
            return self.renew(descriptor.name, descriptor.years, snapshot)
        if decision == LifecycleDecision.REACTIVATE:
            return self.reactivate(descriptor.name, descriptor.years, snapshot)
        return None

    def create(
        self,
        domain: str,
        years: int,
        max_price: float,
        nameservers: Sequence[str] = (),
    ) -> CreateResult:
        """
        Purchase a domain that the account does not hold yet.

        Raises:
            AlreadyExists: The account already holds the domain
            NotAvailable: The domain cannot be registered
            OverBudget: The resolved price exceeds max_price
            RegistrarError: The registrar rejected a call
            TransientFailure: The retry budget ran out
        """
        snapshot = self._retry.call(self._gateway.lookup_domain, domain)
        if snapshot.exists and (snapshot.name is None or same_domain(snapshot.name, domain)):
            raise AlreadyExists(
                code=ErrorCode.ALREADY_EXISTS.value,
                message=f"domain [{domain}] has been created in this account",
                details={"domain": domain},
            )

        availability = self._retry.call(self._gateway.check_availability, domain)
        if not availability.available:
            raise NotAvailable(
                code=ErrorCode.NOT_AVAILABLE.value,
                message=(
                    f"domain [{domain}] is not available to register, "
                    "you need to change to another domain"
                ),
                details={"domain": domain},
            )

        price = self.resolve_price(domain, years, availability)
        if price > max_price:
            raise OverBudget(
                code=ErrorCode.OVER_BUDGET.value,
                message=f"domain [{domain}] is overprice [{price:.2f}], ceiling is [{max_price:.2f}]",
                details={
                    "domain": domain,
                    "price": price,
                    "max_price": max_price,
                    "premium": availability.is_premium,
                },
            )

        contact = self._contacts.get(
            lambda: self._retry.call(self._gateway.get_primary_contact_address)
        )
        nameserver_list = ",".join(ns.strip() for ns in nameservers if ns.strip())

        def confirm() -> Optional[CreateResult]:
            current = self._gateway.lookup_domain(domain)
            if current.exists and (current.name is None or same_domain(current.name, domain)):
                return CreateResult(domain=domain, registered=True)
            return None

        result = self._confirmed_call(
            lambda: self._gateway.create_domain(domain, years, nameserver_list, contact),
            confirm,
        )
        if not result.registered:
            raise RegistrarError(
                code=ErrorCode.REGISTRAR_ERROR.value,
                message=f"create domain [{domain}] failed",
                details={"domain": domain, "registered": False},
            )
        return result

    def resolve_price(
        self,
        domain: str,
        years: int,
        availability: AvailabilityResult,
    ) -> float:
        """
        Price for registering a domain for the given number of years.

        A premium price from the availability check wins; otherwise the
        per-TLD register price for the requested duration is used.
        """
        if availability.is_premium:
            return float(availability.premium_price)
        return float(
            self._retry.call(
                self._gateway.lookup_pricing,
                PRICING_ACTION_REGISTER,
                product_for_domain(domain),
                years,
            )
        )

    def renew(
        self,
        domain: str,
        years: int,
        snapshot: Optional[RemoteDomainSnapshot] = None,
    ) -> RenewResult:
        """
        Renew an active registration.

        Raises:
            RenewalRejected: The registrar did not confirm the renewal
        """

        def confirm() -> Optional[RenewResult]:
            if snapshot is None or snapshot.expires_at is None:
                return None
            current = self._gateway.lookup_domain(domain)
            if current.expires_at is not None and current.expires_at > snapshot.expires_at:
                return RenewResult(domain=domain, renewed=True)
            return None

        try:
            result = self._confirmed_call(
                lambda: self._gateway.renew_domain(domain, years), confirm
            )
        except RegistrarError as e:
            raise RenewalRejected(
                code=ErrorCode.RENEWAL_REJECTED.value,
                message=f"renew domain [{domain}] failed: {e.message}",
                details={"domain": domain, **_registrar_details(e)},
            ) from e

        if not result.renewed:
            raise RenewalRejected(
                code=ErrorCode.RENEWAL_REJECTED.value,
                message=f"renew domain [{domain}] failed",
                details={"domain": domain, "renewed": False},
            )
        return result

    def reactivate(
        self,
        domain: str,
        years: int,
        snapshot: Optional[RemoteDomainSnapshot] = None,
    ) -> ReactivateResult:
        """
        Reactivate a registration that lapsed into the expired state.

        Raises:
            ReactivationRejected: The registrar did not confirm the reactivation
        """

        def confirm() -> Optional[ReactivateResult]:
            if snapshot is None or not snapshot.expired:
                return None
            current = self._gateway.lookup_domain(domain)
            if current.exists and not current.expired:
                return ReactivateResult(domain=domain, success=True)
            return None

        try:
            result = self._confirmed_call(
                lambda: self._gateway.reactivate_domain(domain, years), confirm
            )
        except RegistrarError as e:
            raise ReactivationRejected(
                code=ErrorCode.REACTIVATION_REJECTED.value,
                message=f"reactivate domain [{domain}] failed: {e.message}",
                details={"domain": domain, **_registrar_details(e)},
            ) from e

        if not result.success:
            raise ReactivationRejected(
                code=ErrorCode.REACTIVATION_REJECTED.value,
                message=f"reactivate domain [{domain}] failed",
                details={"domain": domain, "success": False},
            )
        return result

    def _confirmed_call(
        self,
        operation: Callable[[], T],
        confirm: Callable[[], Optional[T]],
    ) -> T:
        """
        Retry a call that must not be repeated blindly.

        After a transport failure the outcome of the previous attempt is
        unknown, so confirm() is consulted first; a non-None result means
        the earlier attempt took effect and is returned instead of calling
        operation() again.
        """
        uncertain = False

        def attempt() -> T:
            nonlocal uncertain
            if uncertain:
                confirmed = confirm()
                if confirmed is not None:
                    return confirmed
            uncertain = True
            return operation()

        return self._retry.call(attempt)
