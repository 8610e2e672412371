"""
Configuration dataclasses for the domain reconciler.

This module defines the configuration structures used by the driver and
its collaborators: registrar credentials, retry and rate-limit policy,
logging, persistence, and the desired state of every managed domain.
Credentials may come from the environment (optionally via a .env file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .enums import EmailType, ErrorCode
from .exceptions import ConfigurationError
from .models import DomainDescriptor, HostRecord

ENV_API_USER = "NAMECHEAP_API_USER"
ENV_API_KEY = "NAMECHEAP_API_KEY"
ENV_USER_NAME = "NAMECHEAP_USER_NAME"
ENV_CLIENT_IP = "NAMECHEAP_CLIENT_IP"
ENV_USE_SANDBOX = "NAMECHEAP_USE_SANDBOX"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class RegistrarConfig:
    """Credentials and endpoint settings for the registrar API."""

    api_user: str
    api_key: str
    user_name: str
    client_ip: str
    use_sandbox: bool = False
    timeout_seconds: float = 30.0


@dataclass
class RetryConfig:
    """Retry behavior configuration for registrar calls."""

    base_delay_seconds: float = 0.5
    multiplier: float = 2.0
    max_delay_seconds: float = 10.0
    max_elapsed_seconds: float = 30.0
    max_retries: Optional[int] = None  # None: bounded by elapsed budget only


@dataclass
class RateLimitRule:
    """A single rate limit rule."""

    max_requests: int
    window_seconds: float


@dataclass
class RateLimitConfig:
    """Client-side throttle matching the registrar's published API limits."""

    rules: list[RateLimitRule] = field(
        default_factory=lambda: [
            RateLimitRule(max_requests=20, window_seconds=60.0),
            RateLimitRule(max_requests=700, window_seconds=3600.0),
            RateLimitRule(max_requests=8000, window_seconds=86400.0),
        ]
    )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class PersistenceConfig:
    """Persistence and state storage configuration."""

    state_file_path: Path
    hmac_secret: str


@dataclass
class DNSConfig:
    """Desired DNS for a domain: either hosted records or delegated nameservers."""

    records: list[HostRecord] = field(default_factory=list)
    email_type: Optional[EmailType] = None
    nameservers: list[str] = field(default_factory=list)


@dataclass
class DomainConfig:
    """A managed domain: lifecycle settings plus optional DNS management."""

    descriptor: DomainDescriptor
    dns: Optional[DNSConfig] = None


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    registrar: Optional[RegistrarConfig]
    domains: list[DomainConfig] = field(default_factory=list)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    persistence: Optional[PersistenceConfig] = None
    simulation_mode: bool = False


def parse_bool(value: Optional[str], name: str) -> bool:
    """Parse an environment flag, rejecting anything that is not a boolean."""
    normalized = (value or "").strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        code=ErrorCode.CONFIGURATION_ERROR.value,
        message=f"{name} must be a boolean, got {value!r}",
        details={"variable": name},
    )


def load_registrar_config_from_env(
    overrides: Optional[dict] = None,
    dotenv_path: Optional[Path] = None,
) -> RegistrarConfig:
    """
    Build registrar credentials from explicit values and the environment.

    Explicit values win over environment variables. A .env file is loaded
    first if present; it never overrides variables that are already set.

    Args:
        overrides: Optional mapping with any of api_user, api_key, user_name,
                   client_ip, use_sandbox, timeout_seconds
        dotenv_path: Optional path to a .env file

    Returns:
        RegistrarConfig

    Raises:
        ConfigurationError: If any required value is missing
    """
    load_dotenv(dotenv_path=dotenv_path)
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    api_user = overrides.get("api_user") or os.getenv(ENV_API_USER, "")
    api_key = overrides.get("api_key") or os.getenv(ENV_API_KEY, "")
    # The account user name defaults to the API user, as on most accounts
    user_name = overrides.get("user_name") or os.getenv(ENV_USER_NAME, "") or api_user
    client_ip = overrides.get("client_ip") or os.getenv(ENV_CLIENT_IP, "")

    missing = [
        name
        for name, value in (
            (ENV_API_USER, api_user),
            (ENV_API_KEY, api_key),
            (ENV_CLIENT_IP, client_ip),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(
            code=ErrorCode.CONFIGURATION_ERROR.value,
            message=(
                "Missing registrar credentials. Set them in the configuration "
                f"or via environment variables: {', '.join(missing)}"
            ),
            details={"missing": missing},
        )

    if "use_sandbox" in overrides:
        use_sandbox = bool(overrides["use_sandbox"])
    else:
        use_sandbox = parse_bool(os.getenv(ENV_USE_SANDBOX), ENV_USE_SANDBOX)

    return RegistrarConfig(
        api_user=api_user,
        api_key=api_key,
        user_name=user_name,
        client_ip=client_ip,
        use_sandbox=use_sandbox,
        timeout_seconds=float(overrides.get("timeout_seconds", 30.0)),
    )
