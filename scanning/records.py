# scanning/records.py
# Write side used by the publishing pipeline and the check workers.
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from extensions import db
from scanning.models import (
    CheckCategory, CheckOutcome, ExtensionScan, ExtensionThreat,
    ExtensionValidationFailure, ScanCheckResult, ScanStatus,
)
from scanning.lifecycle import IN_FLIGHT, LifecycleError, can_transition, is_terminal, resolve_outcome

utcnow = lambda: datetime.now(timezone.utc)


def _active_scan_exists(namespace: str, extension: str, version: str, target_platform: Optional[str]) -> bool:
    s = ExtensionScan
    platform_cond = s.target_platform.is_(None) if target_platform is None else s.target_platform == target_platform
    q = (
        select(s.id)
        .where(
            s.namespace_name == namespace,
            s.extension_name == extension,
            s.extension_version == version,
            platform_cond,
            s.status.in_(IN_FLIGHT),
        )
        .limit(1)
    )
    return db.session.execute(q).first() is not None


def start_scan(
    namespace: str,
    extension: str,
    version: str,
    publisher: str,
    *,
    target_platform: Optional[str] = None,
    publisher_url: Optional[str] = None,
    display_name: Optional[str] = None,
    started_at: Optional[datetime] = None,
) -> ExtensionScan:
    if _active_scan_exists(namespace, extension, version, target_platform):
        raise LifecycleError(
            f"An active scan already exists for {namespace}.{extension} v{version} ({target_platform or 'universal'})"
        )
    scan = ExtensionScan(
        namespace_name=namespace,
        extension_name=extension,
        extension_version=version,
        target_platform=target_platform,
        publisher=publisher,
        publisher_url=publisher_url,
        extension_display_name=display_name,
        status=ScanStatus.STARTED,
        started_at=started_at or utcnow(),
    )
    db.session.add(scan)
    db.session.flush()
    return scan


def advance(scan: ExtensionScan, status: ScanStatus, *, error_message: Optional[str] = None,
            completed_at: Optional[datetime] = None) -> ExtensionScan:
    if not can_transition(scan.status, status):
        raise LifecycleError(f"Illegal transition {scan.status.value} -> {status.value} for scan #{scan.id}")
    scan.status = status
    if is_terminal(status):
        scan.completed_at = completed_at or utcnow()
    if status == ScanStatus.ERRORED:
        scan.error_message = error_message or "Unexpected scan failure"
    db.session.flush()
    return scan


def finish(scan: ExtensionScan, *, completed_at: Optional[datetime] = None) -> ExtensionScan:
    """Move an in-flight scan to the terminal status its recorded facts imply."""
    findings = list(scan.validation_failures) + list(scan.threats)
    outcome = resolve_outcome(scan.check_results, findings)
    error_message = None
    if outcome == ScanStatus.ERRORED:
        errored = [c for c in scan.check_results if c.required and c.result == CheckOutcome.ERROR]
        error_message = errored[0].error_message if errored else None
    return advance(scan, outcome, error_message=error_message, completed_at=completed_at)


def record_check(
    scan: ExtensionScan,
    check_type: str,
    category: CheckCategory,
    result: CheckOutcome,
    *,
    started_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
    files_scanned: Optional[int] = None,
    findings_count: Optional[int] = None,
    summary: Optional[str] = None,
    error_message: Optional[str] = None,
    required: bool = True,
) -> ScanCheckResult:
    started_at = started_at or utcnow()
    completed_at = completed_at or utcnow()
    if result == CheckOutcome.ERROR and summary is None and error_message:
        summary = "Error: " + (error_message[:100] + "..." if len(error_message) > 100 else error_message)
    check = ScanCheckResult(
        scan=scan,
        check_type=check_type,
        category=category,
        result=result,
        started_at=started_at,
        completed_at=completed_at,
        duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        files_scanned=files_scanned,
        findings_count=findings_count if findings_count is not None else (0 if result == CheckOutcome.PASSED else None),
        summary=summary,
        error_message=error_message,
        required=required,
    )
    db.session.add(check)
    db.session.flush()
    return check


def add_validation_failure(scan: ExtensionScan, check_type: str, rule_name: str, reason: str,
                           *, enforced: bool = True, detected_at: Optional[datetime] = None) -> ExtensionValidationFailure:
    failure = ExtensionValidationFailure(
        scan=scan,
        check_type=check_type,
        rule_name=rule_name,
        reason=reason,
        enforced=enforced,
        detected_at=detected_at or utcnow(),
    )
    db.session.add(failure)
    db.session.flush()
    return failure


def add_threat(
    scan: ExtensionScan,
    scanner_name: str,
    rule_name: str,
    file_name: str,
    *,
    file_hash: Optional[str] = None,
    file_extension: Optional[str] = None,
    reason: Optional[str] = None,
    severity: Optional[str] = None,
    enforced: bool = True,
    detected_at: Optional[datetime] = None,
) -> ExtensionThreat:
    if file_extension is None and "." in file_name:
        file_extension = file_name.rsplit(".", 1)[-1].lower()
    threat = ExtensionThreat(
        scan=scan,
        scanner_name=scanner_name,
        rule_name=rule_name,
        reason=reason,
        severity=severity,
        file_name=file_name,
        file_hash=file_hash,
        file_extension=file_extension,
        enforced=enforced,
        detected_at=detected_at or utcnow(),
    )
    db.session.add(threat)
    db.session.flush()
    return threat
