"""
Persistent record of what the driver last saw and did for each domain.

The state file is a JSON document with `version`, `domains`, `last_updated`
and `hmac`. The HMAC (SHA-256, keyed with a configured secret) covers every
other field, so a hand-edited or half-written file is rejected on load
rather than fed back into the next pass. Writes go to a sibling temporary
file that is renamed over the target.
"""

import hashlib
import hmac
import json
import os
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .enums import ErrorCode
from .exceptions import PersistenceError, TamperingError
from .models import DomainRecordState, StoredState

SIGNED_FIELDS = ("version", "domains", "last_updated")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateStore:
    """DomainRecordState entries keyed by canonical domain name."""

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: str) -> None:
        self._path = Path(file_path)
        if not hmac_secret:
            raise self._error(ErrorCode.PERSISTENCE_ERROR, "State file secret must not be empty")
        self._key = hmac_secret.encode("utf-8")
        self._state: Optional[StoredState] = None

    @property
    def state(self) -> Optional[StoredState]:
        return self._state

    @property
    def file_path(self) -> Path:
        return self._path

    def load(self) -> Optional[StoredState]:
        """
        Read and verify the state file.

        Returns:
            The stored state, or None when no file has been written yet

        Raises:
            TamperingError: The HMAC does not match the contents
            PersistenceError: The file is unreadable or does not hold valid state
        """
        raw = self._read()
        if raw is None:
            return None

        signature = str(raw.get("hmac", ""))
        expected = self.compute_hmac({name: raw.get(name) for name in SIGNED_FIELDS})
        if not hmac.compare_digest(signature, expected):
            raise TamperingError(
                code=ErrorCode.HMAC_MISMATCH.value,
                message="State file HMAC does not match its contents",
                details={"file_path": str(self._path)},
            )

        try:
            domains = {
                name: DomainRecordState(**entry)
                for name, entry in (raw.get("domains") or {}).items()
            }
        except TypeError as e:
            raise self._error(ErrorCode.PARSE_ERROR, f"Unrecognized domain entry: {e}") from e

        self._state = StoredState(
            version=raw.get("version") or self.VERSION,
            domains=domains,
            last_updated=raw.get("last_updated") or "",
            hmac=signature,
        )
        return self._state

    def save(self, state: Optional[StoredState] = None) -> None:
        """
        Sign and write the current state, optionally replacing it first.

        Raises:
            PersistenceError: Nothing has been loaded or recorded, or the write failed
        """
        if state is not None:
            self._state = state
        if self._state is None:
            raise self._error(ErrorCode.PERSISTENCE_ERROR, "No state to save")

        payload = {
            "version": self._state.version,
            "domains": {name: asdict(entry) for name, entry in self._state.domains.items()},
            "last_updated": _utc_now(),
        }
        payload["hmac"] = self.compute_hmac(payload)
        self._write(payload)

        self._state = StoredState(
            version=self._state.version,
            domains=self._state.domains,
            last_updated=payload["last_updated"],
            hmac=payload["hmac"],
        )

    def get_domain_state(self, domain: str) -> Optional[DomainRecordState]:
        if self._state is None:
            return None
        return self._state.domains.get(domain)

    def update_domain_state(self, domain_state: DomainRecordState) -> None:
        """Replace one domain's entry and stamp updated_at; written on the next save()."""
        domain_state.updated_at = _utc_now()
        self._ensure_state().domains[domain_state.domain] = domain_state

    def remove_domain_state(self, domain: str) -> bool:
        if self._state is None:
            return False
        return self._state.domains.pop(domain, None) is not None

    def compute_hmac(self, data: dict) -> str:
        """HMAC-SHA256 of the compact, key-sorted JSON form of data."""
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(self._key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()

    def _ensure_state(self) -> StoredState:
        if self._state is None:
            self._state = StoredState(version=self.VERSION, domains={}, last_updated="", hmac="")
        return self._state

    def _read(self) -> Optional[dict]:
        if not self._path.exists():
            return None
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise self._error(ErrorCode.PERSISTENCE_ERROR, f"Cannot read state file: {e}") from e
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise self._error(ErrorCode.PARSE_ERROR, f"State file is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise self._error(ErrorCode.PARSE_ERROR, "State file is not a JSON object")
        return raw

    def _write(self, payload: dict) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise self._error(ErrorCode.PERSISTENCE_ERROR, f"Cannot write state file: {e}") from e

    def _error(self, code: ErrorCode, message: str) -> PersistenceError:
        return PersistenceError(
            code=code.value,
            message=message,
            details={"file_path": str(self._path)},
        )
