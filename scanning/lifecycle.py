"""
Scan lifecycle: legal status transitions, outcome resolution for the
check workers, and the mapping between internal statuses and the tokens
shown by the admin API.
"""
from __future__ import annotations
from typing import Dict, FrozenSet, Iterable, Optional

from scanning.models import CheckOutcome, ScanStatus


class LifecycleError(Exception):
    pass


IN_FLIGHT: FrozenSet[ScanStatus] = frozenset({
    ScanStatus.STARTED,
    ScanStatus.VALIDATING,
    ScanStatus.SCANNING,
})

TERMINAL: FrozenSet[ScanStatus] = frozenset({
    ScanStatus.PASSED,
    ScanStatus.QUARANTINED,
    ScanStatus.REJECTED,
    ScanStatus.ERRORED,
})

_TRANSITIONS: Dict[ScanStatus, FrozenSet[ScanStatus]] = {
    ScanStatus.STARTED:    frozenset({ScanStatus.VALIDATING, ScanStatus.ERRORED}),
    ScanStatus.VALIDATING: frozenset({ScanStatus.SCANNING}) | TERMINAL,
    ScanStatus.SCANNING:   TERMINAL,
}

# internal status -> external display token; everything else maps to its own name
_DISPLAY: Dict[ScanStatus, str] = {
    ScanStatus.REJECTED: "AUTO REJECTED",
    ScanStatus.ERRORED:  "ERROR",
}
_FROM_DISPLAY: Dict[str, ScanStatus] = {
    _DISPLAY.get(s, s.value): s for s in ScanStatus
}

# keys used by the statistics payload
_STAT_KEYS: Dict[ScanStatus, str] = {
    ScanStatus.REJECTED: "AUTO_REJECTED",
    ScanStatus.ERRORED:  "ERROR",
}


def is_terminal(status: ScanStatus) -> bool:
    return status in TERMINAL

def can_transition(current: ScanStatus, target: ScanStatus) -> bool:
    return target in _TRANSITIONS.get(current, frozenset())

def accepts_decision(status: ScanStatus) -> bool:
    """Only quarantined scans can receive a reviewer verdict."""
    return status == ScanStatus.QUARANTINED

def display_status(status: ScanStatus) -> str:
    return _DISPLAY.get(status, status.value)

def parse_display_status(token: str) -> Optional[ScanStatus]:
    return _FROM_DISPLAY.get((token or "").strip())

def stat_key(status: ScanStatus) -> str:
    return _STAT_KEYS.get(status, status.value)

def display_tokens() -> list:
    return [display_status(s) for s in ScanStatus]


def resolve_outcome(checks: Iterable, findings: Iterable) -> ScanStatus:
    """
    Terminal status for a scan once every check has reported.

    checks:   objects with `.result` (CheckOutcome) and `.required`
    findings: validation failures and threats, objects with `.enforced`
    """
    checks = list(checks)
    required = [c for c in checks if c.required]

    if any(c.result == CheckOutcome.ERROR for c in required):
        return ScanStatus.ERRORED
    if any(c.result == CheckOutcome.REJECT for c in required):
        return ScanStatus.REJECTED
    if any(f.enforced for f in findings):
        return ScanStatus.QUARANTINED
    if any(c.result == CheckOutcome.QUARANTINE for c in required):
        return ScanStatus.QUARANTINED
    return ScanStatus.PASSED
