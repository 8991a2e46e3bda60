"""
Error registry: the catalogue of WG-* codes in registry.yaml.

Every entry is checked when the file is loaded (required fields, code shape,
domain/prefix agreement, severity, HTTP status range), so a bad registry
fails startup instead of failing the first request that raises that code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import structlog
import yaml

from app.core.errors import CODE_PATTERN

logger = structlog.get_logger(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).with_name("registry.yaml")

VALID_DOMAINS = frozenset({"API", "BIL", "CFG", "DB", "GW", "SEC", "SYS"})
VALID_SEVERITIES = frozenset({"DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"})
REQUIRED_FIELDS = frozenset(
    {"code", "domain", "title", "severity", "retryable", "http_status", "safe_message", "remediation"}
)


class RegistryValidationError(Exception):
    """registry.yaml is structurally invalid."""


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    domain: str
    title: str
    severity: str
    retryable: bool
    http_status: int
    safe_message: str
    remediation: List[str] = field(default_factory=list)
    user_action_required: bool = False
    docs_url: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Dict[str, Any], position: int) -> "ErrorEntry":
        label = f"entry {position} ({raw.get('code', '?')})"

        missing = REQUIRED_FIELDS.difference(raw)
        if missing:
            raise RegistryValidationError(f"{label}: missing {sorted(missing)}")

        code = raw["code"]
        if not CODE_PATTERN.match(code):
            raise RegistryValidationError(f"{label}: malformed code")

        domain = raw["domain"]
        if domain not in VALID_DOMAINS:
            raise RegistryValidationError(f"{label}: unknown domain {domain!r}")
        if code.split("-")[1] != domain:
            raise RegistryValidationError(f"{label}: code prefix does not match domain {domain!r}")

        if raw["severity"] not in VALID_SEVERITIES:
            raise RegistryValidationError(f"{label}: unknown severity {raw['severity']!r}")

        status = int(raw["http_status"])
        if not 400 <= status <= 599:
            raise RegistryValidationError(f"{label}: http_status {status} is not an error status")

        remediation = raw["remediation"] or []
        if not isinstance(remediation, list):
            raise RegistryValidationError(f"{label}: remediation must be a list")

        return cls(
            code=code,
            domain=domain,
            title=raw["title"],
            severity=raw["severity"],
            retryable=bool(raw["retryable"]),
            http_status=status,
            safe_message=raw["safe_message"],
            remediation=[str(step) for step in remediation],
            user_action_required=bool(raw.get("user_action_required", False)),
            docs_url=raw.get("docs_url"),
        )


class ErrorRegistry:
    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}
        self.schema_version: int = 0

    def load(self, path: Union[str, Path, None] = None) -> None:
        """(Re)load the registry; the previous entries survive a failed load."""
        path = Path(path) if path is not None else DEFAULT_REGISTRY_PATH
        document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}

        raw_entries = document.get("errors", [])
        if not isinstance(raw_entries, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for position, raw in enumerate(raw_entries):
            entry = ErrorEntry.from_mapping(raw, position)
            if entry.code in entries:
                raise RegistryValidationError(f"duplicate code {entry.code}")
            entries[entry.code] = entry

        self._entries = entries
        self.schema_version = int(document.get("schema_version", 0))
        logger.info("error_registry_loaded", count=len(entries), schema_version=self.schema_version)

    def get(self, code: str) -> Optional[ErrorEntry]:
        return self._entries.get(code)

    def lookup(self, code: str) -> ErrorEntry:
        try:
            return self._entries[code]
        except KeyError:
            raise KeyError(f"Unknown error code: {code!r}") from None

    def all_codes(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, code: object) -> bool:
        return code in self._entries

    def __iter__(self) -> Iterator[ErrorEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


# Loaded once at startup (app lifespan) and by the test conftest
error_registry = ErrorRegistry()
