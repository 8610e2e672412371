"""
Registrar gateway protocol.

The core consumes the registrar only through this interface. Implementations
raise TransportError for communication failures (which the retry policy
retries) and RegistrarError for errors the registrar reports (which it does
not).
"""

from abc import abstractmethod
from typing import Protocol, Sequence, runtime_checkable

from .enums import EmailType
from .models import (
    AvailabilityResult,
    ContactAddress,
    CreateResult,
    HostRecord,
    HostRecordsResult,
    NameserverStatus,
    ReactivateResult,
    RemoteDomainSnapshot,
    RenewResult,
)


@runtime_checkable
class RegistrarGateway(Protocol):
    """Registrar operations needed for lifecycle and DNS reconciliation."""

    @abstractmethod
    def lookup_domain(self, name: str) -> RemoteDomainSnapshot:
        """Look the domain up in the account; exists=False when absent."""
        ...

    @abstractmethod
    def check_availability(self, name: str) -> AvailabilityResult:
        ...

    @abstractmethod
    def lookup_pricing(self, action: str, product: str, duration: int) -> float:
        """
        Price for an action ('register', 'renew', ...) on a product (TLD, e.g. 'COM').

        Raises:
            RegistrarError: If no price exists for the duration
        """
        ...

    @abstractmethod
    def get_primary_contact_address(self) -> ContactAddress:
        ...

    @abstractmethod
    def create_domain(
        self,
        name: str,
        years: int,
        nameservers: str,
        contact: ContactAddress,
    ) -> CreateResult:
        """Register a domain; an empty nameservers string means registrar defaults."""
        ...

    @abstractmethod
    def renew_domain(self, name: str, years: int) -> RenewResult:
        ...

    @abstractmethod
    def reactivate_domain(self, name: str, years: int) -> ReactivateResult:
        ...

    @abstractmethod
    def get_host_records(self, name: str) -> HostRecordsResult:
        ...

    @abstractmethod
    def set_host_records(
        self,
        name: str,
        records: Sequence[HostRecord],
        email_type: EmailType,
    ) -> None:
        """Replace the complete hosted record set."""
        ...

    @abstractmethod
    def get_nameservers(self, name: str) -> NameserverStatus:
        ...

    @abstractmethod
    def set_nameservers(self, name: str, nameservers: Sequence[str]) -> None:
        """Delegate the domain to the given nameservers."""
        ...

    @abstractmethod
    def reset_nameservers_to_default(self, name: str) -> None:
        """Clear delegation and return to the registrar's hosted DNS."""
        ...
