# admin/filters.py
"""
Filter value objects shared by the list, count and statistics queries.

The API layer turns raw query-string values into these objects; the
repositories turn them into a single SQL predicate.
"""
from __future__ import annotations
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional

from admin.errors import Unprocessable
from admin.services.time_ranges import parse_utc
from scanning.lifecycle import display_tokens, parse_display_status
from scanning.models import Decision, ScanStatus


class Enforcement(enum.Enum):
    ENFORCED     = "enforced"
    NOT_ENFORCED = "notEnforced"
    ALL          = "all"

    @property
    def enforced_only(self) -> Optional[bool]:
        if self is Enforcement.ENFORCED:
            return True
        if self is Enforcement.NOT_ENFORCED:
            return False
        return None


class AdminDecisionFilter(enum.Enum):
    ALLOWED      = "allowed"
    BLOCKED      = "blocked"
    NEEDS_REVIEW = "needs-review"


@dataclass(frozen=True)
class ScanFilter:
    statuses: FrozenSet[ScanStatus] = frozenset()
    namespace: Optional[str] = None
    publisher: Optional[str] = None
    name: Optional[str] = None
    started_from: Optional[datetime] = None
    started_to: Optional[datetime] = None
    check_types: FrozenSet[str] = frozenset()
    scanner_names: FrozenSet[str] = frozenset()
    enforcement: Enforcement = Enforcement.ALL
    admin_decisions: FrozenSet[AdminDecisionFilter] = frozenset()


@dataclass(frozen=True)
class FileFilter:
    decision: Optional[Decision] = None
    publisher: Optional[str] = None
    namespace: Optional[str] = None
    name: Optional[str] = None
    decided_from: Optional[datetime] = None
    decided_to: Optional[datetime] = None


# ---------- parsing ----------

def _split_tokens(values: Optional[Iterable[str]]) -> List[str]:
    """Repeated params and comma-separated values are both accepted."""
    out: List[str] = []
    for raw in values or ():
        if raw is None:
            continue
        for token in str(raw).split(","):
            token = token.strip()
            if token:
                out.append(token)
    return out

def normalize_search(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip().lower()
    return value or None

def parse_statuses(values: Optional[Iterable[str]]) -> FrozenSet[ScanStatus]:
    result = set()
    for token in _split_tokens(values):
        status = parse_display_status(token)
        if status is None:
            raise Unprocessable(f"Unknown status filter: {token}", details={"allowed": display_tokens()})
        result.add(status)
    return frozenset(result)

def parse_enforcement(value: Optional[str]) -> Enforcement:
    if value is None or not value.strip():
        return Enforcement.ALL
    v = value.strip().lower()
    for e in Enforcement:
        if e.value.lower() == v:
            return e
    raise Unprocessable("Parameter 'enforcement' must be one of: enforced, notEnforced, all")

def parse_admin_decisions(values: Optional[Iterable[str]]) -> FrozenSet[AdminDecisionFilter]:
    result = set()
    for token in _split_tokens(values):
        try:
            result.add(AdminDecisionFilter(token.lower()))
        except ValueError:
            raise Unprocessable(
                f"Unknown adminDecision filter: {token}",
                details={"allowed": [d.value for d in AdminDecisionFilter]},
            )
    return frozenset(result)

def parse_decision(value: Optional[str], *, allow_verbs: bool = True) -> Decision:
    """'allowed'/'blocked' (and 'allow'/'block' when allow_verbs) -> Decision."""
    v = (value or "").strip().lower()
    if v == "allowed" or (allow_verbs and v == "allow"):
        return Decision.ALLOWED
    if v == "blocked" or (allow_verbs and v == "block"):
        return Decision.BLOCKED
    raise Unprocessable(f"Invalid decision value: {value}. Must be 'allowed' or 'blocked'")

def build_scan_filter(
    *,
    status: Optional[Iterable[str]] = None,
    namespace: Optional[str] = None,
    publisher: Optional[str] = None,
    name: Optional[str] = None,
    date_started_from: Optional[str] = None,
    date_started_to: Optional[str] = None,
    validation_type: Optional[Iterable[str]] = None,
    threat_scanner_name: Optional[Iterable[str]] = None,
    enforcement: Optional[str] = None,
    admin_decision: Optional[Iterable[str]] = None,
) -> ScanFilter:
    return ScanFilter(
        statuses=parse_statuses(status),
        namespace=normalize_search(namespace),
        publisher=normalize_search(publisher),
        name=normalize_search(name),
        started_from=parse_utc(date_started_from, "dateStartedFrom"),
        started_to=parse_utc(date_started_to, "dateStartedTo"),
        check_types=frozenset(_split_tokens(validation_type)),
        scanner_names=frozenset(_split_tokens(threat_scanner_name)),
        enforcement=parse_enforcement(enforcement),
        admin_decisions=parse_admin_decisions(admin_decision),
    )

def build_file_filter(
    *,
    decision: Optional[str] = None,
    publisher: Optional[str] = None,
    namespace: Optional[str] = None,
    name: Optional[str] = None,
    date_decided_from: Optional[str] = None,
    date_decided_to: Optional[str] = None,
) -> FileFilter:
    return FileFilter(
        decision=parse_decision(decision, allow_verbs=False) if decision and decision.strip() else None,
        publisher=normalize_search(publisher),
        namespace=normalize_search(namespace),
        name=normalize_search(name),
        decided_from=parse_utc(date_decided_from, "dateDecidedFrom"),
        decided_to=parse_utc(date_decided_to, "dateDecidedTo"),
    )
