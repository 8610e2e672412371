"""
Namecheap API client.

Implements the RegistrarGateway protocol over the Namecheap XML API. Every
command is an HTTP GET against a single endpoint carrying the account
credentials plus command-specific parameters; responses are XML documents
with a Status attribute, an Errors list and a CommandResponse.

Failure mapping:
- network errors, timeouts, HTTP 429 and 5xx -> TransportError (retryable)
- an ERROR response from the API -> RegistrarError with the API error number,
  or NotFound when the number says the domain is not in the account
- a body that is not a parsable API response -> RegistrarError(parse_error)
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import httpx
from lxml import etree

from .audit_logger import AuditLogger
from .config import RegistrarConfig
from .domain_validator import DomainValidator, same_domain
from .enums import EmailType, ErrorCode, LogLevel, RecordType
from .exceptions import InvalidRecordValue, NotFound, RegistrarError, TransportError
from .models import (
    DEFAULT_MX_PREF,
    DEFAULT_TTL,
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
from .rate_limiter import RateLimiter

PRODUCTION_URL = "https://api.namecheap.com/xml.response"
SANDBOX_URL = "https://api.sandbox.namecheap.com/xml.response"

# AddressId 0 is the account's primary address
PRIMARY_ADDRESS_ID = "0"

CONTACT_ROLES = ("Registrant", "Tech", "Admin", "AuxBilling")

EXPIRES_FORMAT = "%m/%d/%Y"

# API error numbers meaning the domain is not in the account
DOMAIN_NOT_FOUND_ERRORS = frozenset({"2019166", "2016166"})

# Secure parser
_parser = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_blank_text=True,
)


def _parse_xml(content: bytes) -> etree._Element:
    try:
        return etree.fromstring(content, _parser)
    except etree.XMLSyntaxError as e:
        raise RegistrarError(
            code=ErrorCode.PARSE_ERROR.value,
            message=f"XML parse error: {e}",
            details={"body": content[:200].decode("utf-8", errors="replace")},
        ) from e


def _find(elem: etree._Element, path: str) -> Optional[etree._Element]:
    """Find a descendant by local names, whatever namespace the response uses."""
    return elem.find("/".join(f"{{*}}{part}" for part in path.split("/")))


def _find_text(elem: etree._Element, path: str, default: str = "") -> str:
    found = _find(elem, path)
    if found is not None and found.text:
        return found.text.strip()
    return default


def _bool_attr(elem: etree._Element, name: str, default: bool = False) -> bool:
    value = elem.get(name)
    if value is None:
        return default
    return value.strip().lower() == "true"


def _parse_expires(text: Optional[str]) -> Optional[datetime]:
    if not text:
        return None
    try:
        return datetime.strptime(text.strip(), EXPIRES_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class NamecheapClient:
    """RegistrarGateway backed by the Namecheap XML API."""

    COMPONENT = "namecheap_client"

    def __init__(
        self,
        config: RegistrarConfig,
        rate_limiter: Optional[RateLimiter] = None,
        http_client: Optional[httpx.Client] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Registrar credentials and endpoint selection
            rate_limiter: Client-side throttle (defaults to the registrar's published limits)
            http_client: Pre-configured httpx client, mainly for tests
            logger: Optional audit logger for request tracing
        """
        self._config = config
        self._rate_limiter = rate_limiter or RateLimiter()
        self._http = http_client or httpx.Client(timeout=config.timeout_seconds)
        self._owns_http = http_client is None
        self._logger = logger
        self._validator = DomainValidator()

    @property
    def endpoint(self) -> str:
        return SANDBOX_URL if self._config.use_sandbox else PRODUCTION_URL

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "NamecheapClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, command: str, params: Optional[dict] = None) -> etree._Element:
        """
        Execute one API command and return its CommandResponse element.

        Raises:
            TransportError: Network failure, timeout, HTTP 429 or 5xx
            RegistrarError: API-reported error or unparsable response
        """
        query = {
            "ApiUser": self._config.api_user,
            "ApiKey": self._config.api_key,
            "UserName": self._config.user_name,
            "ClientIp": self._config.client_ip,
            "Command": command,
        }
        query.update(params or {})

        self._rate_limiter.acquire()
        if self._logger is not None:
            self._logger.log(
                LogLevel.DEBUG, self.COMPONENT, f"Calling {command}",
                {"command": command, "params": params or {}},
            )

        try:
            response = self._http.get(self.endpoint, params=query)
        except httpx.HTTPError as e:
            raise TransportError(
                code=ErrorCode.TRANSPORT_ERROR.value,
                message=f"{command} failed: {e}",
                details={"command": command, "error_type": type(e).__name__},
            ) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransportError(
                code=ErrorCode.TRANSPORT_ERROR.value,
                message=f"{command} returned HTTP {response.status_code}",
                details={"command": command, "status_code": response.status_code},
            )
        if response.status_code != 200:
            raise RegistrarError(
                code=ErrorCode.REGISTRAR_ERROR.value,
                message=f"{command} returned HTTP {response.status_code}",
                details={"command": command, "status_code": response.status_code},
            )

        root = _parse_xml(response.content)
        if etree.QName(root).localname != "ApiResponse":
            raise RegistrarError(
                code=ErrorCode.PARSE_ERROR.value,
                message=f"{command} returned an unexpected document",
                details={"command": command, "root": etree.QName(root).localname},
            )

        error = _find(root, "Errors/Error")
        if root.get("Status", "").upper() == "ERROR" or error is not None:
            message = (error.text or "").strip() if error is not None else "Unknown error"
            number = error.get("Number", "") if error is not None else ""
            if number in DOMAIN_NOT_FOUND_ERRORS:
                raise NotFound(
                    code=ErrorCode.NOT_FOUND.value,
                    message=f"{message} ({number})",
                    details={"command": command, "number": number, "message": message},
                )
            raise RegistrarError(
                code=ErrorCode.REGISTRAR_ERROR.value,
                message=f"{message} ({number})" if number else message,
                details={"command": command, "number": number, "message": message},
            )

        command_response = _find(root, "CommandResponse")
        if command_response is None:
            raise RegistrarError(
                code=ErrorCode.PARSE_ERROR.value,
                message=f"{command} response has no CommandResponse",
                details={"command": command},
            )
        return command_response

    def _result(self, command_response: etree._Element, tag: str, command: str) -> etree._Element:
        result = _find(command_response, tag)
        if result is None:
            raise RegistrarError(
                code=ErrorCode.PARSE_ERROR.value,
                message=f"{command} response has no {tag}",
                details={"command": command},
            )
        return result

    def _sld_tld(self, name: str) -> dict:
        sld, tld = self._validator.split(name)
        return {"SLD": sld, "TLD": tld}

    # Lifecycle

    def lookup_domain(self, name: str) -> RemoteDomainSnapshot:
        command = "namecheap.domains.getList"
        try:
            response = self._request(command, {"SearchTerm": name})
        except NotFound:
            return RemoteDomainSnapshot.missing()
        result = self._result(response, "DomainGetListResult", command)

        domains = result.findall("{*}Domain")
        if not domains:
            return RemoteDomainSnapshot.missing()

        # SearchTerm is a substring match; prefer the exact name
        match = next((d for d in domains if same_domain(d.get("Name"), name)), domains[0])
        return RemoteDomainSnapshot(
            exists=True,
            name=match.get("Name"),
            expired=_bool_attr(match, "IsExpired"),
            expires_at=_parse_expires(match.get("Expires")),
        )

    def check_availability(self, name: str) -> AvailabilityResult:
        command = "namecheap.domains.check"
        response = self._request(command, {"DomainList": name})
        result = self._result(response, "DomainCheckResult", command)

        premium_price = None
        if _bool_attr(result, "IsPremiumName"):
            raw = result.get("PremiumRegistrationPrice", "0")
            if raw not in ("", "0"):
                premium_price = float(raw)

        return AvailabilityResult(
            domain=result.get("Domain", name),
            available=_bool_attr(result, "Available"),
            premium_price=premium_price,
        )

    def lookup_pricing(self, action: str, product: str, duration: int) -> float:
        command = "namecheap.users.getPricing"
        response = self._request(command, {
            "ProductType": "DOMAIN",
            "ActionName": action.upper(),
            "ProductName": product.upper(),
        })
        result = self._result(response, "UserGetPricingResult", command)

        for price in result.iter("{*}Price"):
            if price.get("Duration") == str(duration):
                raw = price.get("YourPrice") or price.get("Price")
                if raw:
                    return float(raw)

        raise RegistrarError(
            code=ErrorCode.REGISTRAR_ERROR.value,
            message=f"No {action} price for {product} and {duration} year(s)",
            details={"action": action, "product": product, "duration": duration},
        )

    def get_primary_contact_address(self) -> ContactAddress:
        command = "namecheap.users.address.getInfo"
        response = self._request(command, {"AddressId": PRIMARY_ADDRESS_ID})
        result = self._result(response, "GetAddressInfoResult", command)

        return ContactAddress(
            first_name=_find_text(result, "FirstName"),
            last_name=_find_text(result, "LastName"),
            address=_find_text(result, "Address1"),
            city=_find_text(result, "City"),
            state=_find_text(result, "StateProvince"),
            postal_code=_find_text(result, "Zip"),
            country=_find_text(result, "Country"),
            phone=_find_text(result, "Phone"),
            email=_find_text(result, "EmailAddress"),
            organization=_find_text(result, "Organization"),
            address2=_find_text(result, "Address2"),
        )

    def create_domain(
        self,
        name: str,
        years: int,
        nameservers: str,
        contact: ContactAddress,
    ) -> CreateResult:
        command = "namecheap.domains.create"
        params = {"DomainName": name, "Years": str(years)}
        if nameservers:
            params["Nameservers"] = nameservers

        for role in CONTACT_ROLES:
            params.update({
                f"{role}FirstName": contact.first_name,
                f"{role}LastName": contact.last_name,
                f"{role}Address1": contact.address,
                f"{role}City": contact.city,
                f"{role}StateProvince": contact.state,
                f"{role}PostalCode": contact.postal_code,
                f"{role}Country": contact.country,
                f"{role}Phone": contact.phone,
                f"{role}EmailAddress": contact.email,
            })
            if contact.address2:
                params[f"{role}Address2"] = contact.address2
            if contact.organization:
                params[f"{role}OrganizationName"] = contact.organization

        response = self._request(command, params)
        result = self._result(response, "DomainCreateResult", command)
        return CreateResult(
            domain=result.get("Domain", name),
            registered=_bool_attr(result, "Registered"),
            charged_amount=float(result.get("ChargedAmount") or 0.0),
        )

    def renew_domain(self, name: str, years: int) -> RenewResult:
        command = "namecheap.domains.renew"
        response = self._request(command, {"DomainName": name, "Years": str(years)})
        result = self._result(response, "DomainRenewResult", command)
        return RenewResult(
            domain=result.get("DomainName", name),
            renewed=_bool_attr(result, "Renew"),
        )

    def reactivate_domain(self, name: str, years: int) -> ReactivateResult:
        command = "namecheap.domains.reactivate"
        response = self._request(command, {"DomainName": name, "YearsToAdd": str(years)})
        result = self._result(response, "DomainReactivateResult", command)
        return ReactivateResult(
            domain=result.get("Domain", name),
            success=_bool_attr(result, "IsSuccess"),
        )

    # DNS

    def get_host_records(self, name: str) -> HostRecordsResult:
        command = "namecheap.domains.dns.getHosts"
        response = self._request(command, self._sld_tld(name))
        result = self._result(response, "DomainDNSGetHostsResult", command)

        records = []
        for host in result:
            if etree.QName(host).localname.lower() != "host":
                continue
            record = self._host_record(host, name)
            if record is not None:
                records.append(record)

        email_type = result.get("EmailType") or EmailType.NONE.value
        return HostRecordsResult(
            domain=result.get("Domain", name),
            records=tuple(records),
            email_type=EmailType(email_type.upper()),
            using_registrar_dns=_bool_attr(result, "IsUsingOurDNS", default=True),
        )

    def set_host_records(
        self,
        name: str,
        records: Sequence[HostRecord],
        email_type: EmailType,
    ) -> None:
        command = "namecheap.domains.dns.setHosts"
        params = self._sld_tld(name)
        params["EmailType"] = email_type.value

        for index, record in enumerate(records, start=1):
            params[f"HostName{index}"] = record.hostname
            params[f"RecordType{index}"] = record.record_type.value
            params[f"Address{index}"] = record.address
            params[f"TTL{index}"] = str(record.ttl)
            if record.record_type == RecordType.MX:
                params[f"MXPref{index}"] = str(record.priority)

        response = self._request(command, params)
        result = self._result(response, "DomainDNSSetHostsResult", command)
        self._require_success(result, "IsSuccess", command, name)

    def get_nameservers(self, name: str) -> NameserverStatus:
        command = "namecheap.domains.dns.getList"
        response = self._request(command, self._sld_tld(name))
        result = self._result(response, "DomainDNSGetListResult", command)

        nameservers = tuple(
            ns.text.strip() for ns in result.findall("{*}Nameserver") if ns.text
        )
        return NameserverStatus(
            domain=result.get("Domain", name),
            using_registrar_dns=_bool_attr(result, "IsUsingOurDNS", default=True),
            nameservers=nameservers,
        )

    def set_nameservers(self, name: str, nameservers: Sequence[str]) -> None:
        command = "namecheap.domains.dns.setCustom"
        params = self._sld_tld(name)
        params["Nameservers"] = ",".join(nameservers)

        response = self._request(command, params)
        result = self._result(response, "DomainDNSSetCustomResult", command)
        self._require_success(result, "Updated", command, name)

    def reset_nameservers_to_default(self, name: str) -> None:
        command = "namecheap.domains.dns.setDefault"
        response = self._request(command, self._sld_tld(name))
        result = self._result(response, "DomainDNSSetDefaultResult", command)
        self._require_success(result, "Updated", command, name)

    def _require_success(
        self, result: etree._Element, attribute: str, command: str, name: str
    ) -> None:
        if not _bool_attr(result, attribute):
            raise RegistrarError(
                code=ErrorCode.REGISTRAR_ERROR.value,
                message=f"{command} was not applied to {name}",
                details={"command": command, "domain": name, attribute: result.get(attribute)},
            )

    def _host_record(self, host: etree._Element, name: str) -> Optional[HostRecord]:
        """Convert a host element; record types this client does not manage are skipped."""
        try:
            return HostRecord(
                hostname=host.get("Name", ""),
                record_type=host.get("Type", ""),
                address=host.get("Address", ""),
                priority=int(host.get("MXPref") or DEFAULT_MX_PREF),
                ttl=int(host.get("TTL") or DEFAULT_TTL),
            )
        except InvalidRecordValue as e:
            if self._logger is not None:
                self._logger.warn(
                    self.COMPONENT, "Skipping unsupported host record",
                    {"domain": name, "error": e.to_dict()},
                )
            return None
