"""
Command-line interface for the domain reconciler.

This module provides the main CLI entry point with commands for:
- plan: Show the lifecycle decision for every configured domain
- apply: Reconcile lifecycle and DNS for every configured domain
- show: Print the registrar's current view of one domain
- clear-dns: Release DNS management of one configured domain
- config: Configuration management

Registrar credentials come from the configuration file or from the
NAMECHEAP_* environment variables (a .env file is honored); the API key is
never written to the configuration file.
"""

import argparse
import json
import secrets
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from . import __version__
from .audit_logger import AuditLogger
from .config import (
    DNSConfig,
    DomainConfig,
    LoggingConfig,
    PersistenceConfig,
    RateLimitConfig,
    RateLimitRule,
    RetryConfig,
    SystemConfig,
    load_registrar_config_from_env,
    parse_bool,
)
from .decision_engine import DecisionEngine
from .domain_validator import same_domain
from .enums import EmailType, ErrorCode
from .exceptions import ConfigurationError, InvalidRecordValue, ReconcilerError
from .models import DomainDescriptor, HostRecord
from .namecheap_client import NamecheapClient
from .orchestrator import DNSRunResult, DomainRunResult, ReconciliationDriver
from .rate_limiter import RateLimiter
from .state_store import StateStore

DEFAULT_CONFIG_DIR = Path.home() / ".domain_reconciler"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.json"


def create_default_config(
    simulation_mode: bool = False,
    state_file: Optional[Path] = None,
    hmac_secret: Optional[str] = None,
) -> SystemConfig:
    """
    Create a default system configuration with no managed domains.

    Args:
        simulation_mode: Compute and log decisions without changing anything
        state_file: Path to state file for persistence
        hmac_secret: Secret for HMAC protection (random if not given)
    """
    return SystemConfig(
        registrar=None,
        domains=[],
        persistence=PersistenceConfig(
            state_file_path=state_file or DEFAULT_CONFIG_DIR / "state.json",
            hmac_secret=hmac_secret or secrets.token_hex(32),
        ),
        simulation_mode=simulation_mode,
    )


def _flag(data: dict, key: str, default: bool) -> bool:
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    return parse_bool(str(value), key)


def _parse_domain(data: dict) -> DomainConfig:
    descriptor = DomainDescriptor(
        name=data["name"],
        years=int(data.get("years", 1)),
        min_days_remaining=int(data.get("min_days_remaining", 30)),
        auto_renew=_flag(data, "auto_renew", True),
        max_price=float(data["max_price"]) if data.get("max_price") is not None else None,
        nameservers=tuple(data.get("nameservers", [])),
    )

    dns = None
    dns_data = data.get("dns")
    if dns_data is not None:
        email_type = dns_data.get("email_type")
        dns = DNSConfig(
            records=[HostRecord.from_dict(r) for r in dns_data.get("records", [])],
            email_type=EmailType(email_type.upper()) if email_type else None,
            nameservers=list(dns_data.get("nameservers", [])),
        )

    return DomainConfig(descriptor=descriptor, dns=dns)


def _domain_to_dict(domain_config: DomainConfig) -> dict:
    descriptor = domain_config.descriptor
    data = {
        "name": descriptor.name,
        "years": descriptor.years,
        "min_days_remaining": descriptor.min_days_remaining,
        "auto_renew": descriptor.auto_renew,
        "max_price": descriptor.max_price,
        "nameservers": list(descriptor.nameservers),
    }
    if domain_config.dns is not None:
        dns = domain_config.dns
        data["dns"] = {
            "records": [r.to_dict() for r in dns.records],
            "email_type": dns.email_type.value if dns.email_type else None,
            "nameservers": list(dns.nameservers),
        }
    return data


def load_config_from_file(
    config_path: Path,
    resolve_credentials: bool = True,
) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file
        resolve_credentials: Complete registrar credentials from the environment;
                             if False the registrar section is left unresolved

    Returns:
        SystemConfig, or None if the file does not exist

    Raises:
        ConfigurationError: If the file is malformed or credentials are missing
    """
    if not config_path.exists():
        return None

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        registrar = None
        if resolve_credentials:
            registrar = load_registrar_config_from_env(overrides=data.get("registrar"))

        domains = [_parse_domain(d) for d in data.get("domains", [])]

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            base_delay_seconds=retry_data.get("base_delay_seconds", 0.5),
            multiplier=retry_data.get("multiplier", 2.0),
            max_delay_seconds=retry_data.get("max_delay_seconds", 10.0),
            max_elapsed_seconds=retry_data.get("max_elapsed_seconds", 30.0),
            max_retries=retry_data.get("max_retries"),
        )

        rules_data = data.get("rate_limits", {}).get("rules")
        rate_limits = RateLimitConfig()
        if rules_data:
            rate_limits = RateLimitConfig(rules=[
                RateLimitRule(
                    max_requests=int(rule["max_requests"]),
                    window_seconds=float(rule["window_seconds"]),
                )
                for rule in rules_data
            ])

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        )

        persistence = None
        persistence_data = data.get("persistence")
        if persistence_data:
            persistence = PersistenceConfig(
                state_file_path=Path(
                    persistence_data.get("state_file_path")
                    or DEFAULT_CONFIG_DIR / "state.json"
                ),
                hmac_secret=persistence_data["hmac_secret"],
            )

        return SystemConfig(
            registrar=registrar,
            domains=domains,
            retry=retry,
            rate_limits=rate_limits,
            logging=logging_config,
            persistence=persistence,
            simulation_mode=_flag(data, "simulation_mode", False),
        )
    except InvalidRecordValue as e:
        raise ConfigurationError(
            code=ErrorCode.CONFIGURATION_ERROR.value,
            message=f"Invalid DNS record in configuration: {e.message}",
            details={"config_path": str(config_path), **e.details},
        ) from e
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(
            code=ErrorCode.CONFIGURATION_ERROR.value,
            message=f"Invalid configuration file: {e}",
            details={"config_path": str(config_path)},
        ) from e
    except OSError as e:
        raise ConfigurationError(
            code=ErrorCode.CONFIGURATION_ERROR.value,
            message=f"Could not read configuration file: {e}",
            details={"config_path": str(config_path)},
        ) from e


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file. The API key is never written.

    Returns:
        True if successful, False otherwise
    """
    data = {
        "domains": [_domain_to_dict(d) for d in config.domains],
        "retry": {
            "base_delay_seconds": config.retry.base_delay_seconds,
            "multiplier": config.retry.multiplier,
            "max_delay_seconds": config.retry.max_delay_seconds,
            "max_elapsed_seconds": config.retry.max_elapsed_seconds,
            "max_retries": config.retry.max_retries,
        },
        "rate_limits": {
            "rules": [
                {"max_requests": r.max_requests, "window_seconds": r.window_seconds}
                for r in config.rate_limits.rules
            ],
        },
        "logging": {
            "level": config.logging.level,
            "output_format": config.logging.output_format,
        },
        "simulation_mode": config.simulation_mode,
    }
    if config.registrar is not None:
        data["registrar"] = {
            "api_user": config.registrar.api_user,
            "user_name": config.registrar.user_name,
            "client_ip": config.registrar.client_ip,
            "use_sandbox": config.registrar.use_sandbox,
            "timeout_seconds": config.registrar.timeout_seconds,
        }
    if config.persistence is not None:
        data["persistence"] = {
            "state_file_path": str(config.persistence.state_file_path),
            "hmac_secret": config.persistence.hmac_secret,
        }

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        return True
    except OSError as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def _load_run_config(args: argparse.Namespace) -> SystemConfig:
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_PATH
    config = load_config_from_file(config_path)
    if config is None:
        raise ConfigurationError(
            code=ErrorCode.CONFIGURATION_ERROR.value,
            message=f"No configuration found at: {config_path}",
            details={"config_path": str(config_path)},
        )
    if getattr(args, "dry_run", False):
        config = replace(config, simulation_mode=True)
    return config


def create_logger(config: SystemConfig, verbose: bool = False) -> AuditLogger:
    return AuditLogger(
        output_format=config.logging.output_format,
        level="debug" if verbose else config.logging.level,
    )


def create_state_store(config: SystemConfig) -> Optional[StateStore]:
    """
    Open the state store configured for this run.

    Raises:
        PersistenceError / TamperingError: If the existing state cannot be trusted
    """
    if config.persistence is None:
        return None
    store = StateStore(
        file_path=config.persistence.state_file_path,
        hmac_secret=config.persistence.hmac_secret,
    )
    store.load()
    return store


def create_driver(
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
    state_store: Optional[StateStore] = None,
) -> tuple[ReconciliationDriver, NamecheapClient]:
    """Build the Namecheap client and a driver around it; the caller closes the client."""
    client = NamecheapClient(
        config.registrar,
        rate_limiter=RateLimiter(config.rate_limits),
        logger=logger,
    )
    driver = ReconciliationDriver(
        gateway=client,
        config=config,
        state_store=state_store,
        logger=logger,
    )
    return driver, client


def _print_domain_result(result: DomainRunResult) -> None:
    decision = result.decision.value if result.decision else "error"
    line = f"{result.domain}: {decision}"
    if result.reason:
        line += f" ({result.reason})"
    if result.executed:
        line += " [done]"
    print(line)
    if result.expires_at is not None:
        print(f"  Expires: {result.expires_at.isoformat()}")
    for error in result.errors:
        print(f"  Error: {error}")


def _print_dns_result(result: DNSRunResult) -> None:
    mode = result.mode.value if result.mode else "none"
    print(f"{result.domain}: DNS {mode}{' [done]' if result.executed else ''}")
    if result.diff is not None:
        for record in result.diff.to_add:
            print(f"  + {record.describe()}")
        for record in result.diff.to_remove:
            print(f"  - {record.describe()}")
    for error in result.errors:
        print(f"  Error: {error}")


def cmd_plan(args: argparse.Namespace) -> int:
    """Handle the 'plan' command."""
    try:
        config = _load_run_config(args)
        logger = create_logger(config, args.verbose)
        driver, client = create_driver(config, logger)
    except ReconcilerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    with client:
        results = driver.plan_all()

    for result in results:
        _print_domain_result(result)
    return 1 if any(r.failed for r in results) else 0


def cmd_apply(args: argparse.Namespace) -> int:
    """Handle the 'apply' command."""
    try:
        config = _load_run_config(args)
        logger = create_logger(config, args.verbose)
        state_store = create_state_store(config)
        driver, client = create_driver(config, logger, state_store)
    except ReconcilerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if config.simulation_mode:
        print("Simulation mode: no changes will be made")

    with client:
        summary = driver.apply_all()

    for result in summary.domains:
        _print_domain_result(result)
    for result in summary.dns:
        _print_dns_result(result)
    for error in summary.errors:
        print(f"Error: {error}", file=sys.stderr)

    return 1 if summary.failed else 0


def cmd_show(args: argparse.Namespace) -> int:
    """Handle the 'show' command."""
    try:
        config = _load_run_config(args)
        logger = create_logger(config, args.verbose)
        driver, client = create_driver(config, logger)
        configured = next(
            (d for d in config.domains if same_domain(d.descriptor.name, args.domain)),
            None,
        )
        desired = configured.dns.records if configured and configured.dns else []
        with client:
            report = driver.read(args.domain, desired)
    except ReconcilerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    snapshot = report.snapshot
    print(f"Domain: {report.domain}")
    if not snapshot.exists:
        print("  Not in account")
        return 0

    print(f"  Expired: {snapshot.expired}")
    if snapshot.expires_at is not None:
        print(f"  Expires: {snapshot.expires_at.isoformat()}")
    if configured is not None:
        due = DecisionEngine().requires_renewal(configured.descriptor, snapshot.expires_at)
        print(f"  Renewal due: {due}")
    if report.dns is not None:
        print(f"  DNS mode: {report.dns.mode.value}")
        for nameserver in report.dns.nameservers:
            print(f"  Nameserver: {nameserver}")
        if report.dns.email_type is not None:
            print(f"  Email type: {report.dns.email_type.value}")
        for record in report.dns.records:
            print(
                f"  {record.hostname} {record.record_type.value} {record.address} "
                f"(mx_pref={record.priority}, ttl={record.ttl})"
            )
    return 0


def cmd_clear_dns(args: argparse.Namespace) -> int:
    """Handle the 'clear-dns' command."""
    try:
        config = _load_run_config(args)
        matches = [d for d in config.domains if same_domain(d.descriptor.name, args.domain)]
        if not matches:
            print(f"Error: {args.domain} is not a configured domain", file=sys.stderr)
            return 1
        logger = create_logger(config, args.verbose)
        state_store = create_state_store(config)
        driver, client = create_driver(config, logger, state_store)
    except ReconcilerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    with client:
        result = driver.clear_dns(matches[0])
    error = driver.save_state()

    _print_dns_result(result)
    if error:
        print(f"Error: {error}", file=sys.stderr)
    return 1 if result.failed or error else 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1
        if save_config_to_file(create_default_config(), config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    try:
        config = load_config_from_file(config_path, resolve_credentials=False)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if config is None:
        print(f"No configuration found at: {config_path}")
        print("Use 'config init' to create a default configuration.")
        return 1

    if args.action == "show":
        print(f"Configuration from: {config_path}")
        print(f"  Simulation mode: {config.simulation_mode}")
        print(f"  Domains: {', '.join(d.descriptor.name for d in config.domains) or '-'}")
        if config.persistence is not None:
            print(f"  State file: {config.persistence.state_file_path}")
        print(f"  Log level: {config.logging.level}")
        return 0

    if args.action == "validate":
        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _add_run_options(parser: argparse.ArgumentParser, dry_run: bool = False) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    if dry_run:
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Simulation mode - compute and log changes without making them",
        )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-reconciler",
        description="Keep registered domains and their DNS in the desired state",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    plan_parser = subparsers.add_parser(
        "plan",
        help="Show the lifecycle decision for every configured domain",
    )
    _add_run_options(plan_parser)
    plan_parser.set_defaults(func=cmd_plan)

    apply_parser = subparsers.add_parser(
        "apply",
        help="Reconcile every configured domain",
    )
    _add_run_options(apply_parser, dry_run=True)
    apply_parser.set_defaults(func=cmd_apply)

    show_parser = subparsers.add_parser(
        "show",
        help="Show the registrar's view of a domain",
    )
    show_parser.add_argument("domain", help="Domain to show")
    _add_run_options(show_parser)
    show_parser.set_defaults(func=cmd_show)

    clear_parser = subparsers.add_parser(
        "clear-dns",
        help="Stop managing a domain's DNS",
    )
    clear_parser.add_argument("domain", help="Configured domain")
    _add_run_options(clear_parser, dry_run=True)
    clear_parser.set_defaults(func=cmd_clear_dns)

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
