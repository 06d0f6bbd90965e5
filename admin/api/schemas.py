"""
JSON shapes for the reviewer API plus small body validators (dependency-free).
"""
from typing import Any, Dict, List, Optional
from admin.errors import Unprocessable
from admin.services.time_ranges import to_utc_string
from scanning.lifecycle import display_status
from scanning.models import (
    AdminScanDecision, Decision, ExtensionScan, ExtensionThreat,
    ExtensionValidationFailure, FileDecision, ScanCheckResult, ScanStatus,
)


# ---------- bodies ----------

def coerce_list(data: Dict[str, Any], key: str) -> List[Any]:
    v = data.get(key)
    if not isinstance(v, list) or not v:
        raise Unprocessable(f"'{key}' must be a non-empty list")
    return v

def coerce_str(data: Dict[str, Any], key: str, *, max_len: int = 255) -> str:
    v = data.get(key, "")
    if not isinstance(v, str):
        raise Unprocessable(f"'{key}' must be string")
    if len(v) > max_len:
        raise Unprocessable(f"'{key}' must be at most {max_len} chars")
    return v.strip()


# ---------- responses ----------

def decision_label(decision: Decision) -> str:
    return "Allowed" if decision == Decision.ALLOWED else "Blocked"

def admin_decision_json(d: Optional[AdminScanDecision]) -> Optional[Dict[str, Any]]:
    if d is None:
        return None
    return {
        "decision": decision_label(d.decision),
        "decided_by": d.decided_by,
        "date_decided": to_utc_string(d.decided_at),
    }

def check_result_json(c: ScanCheckResult) -> Dict[str, Any]:
    return {
        "check_type": c.check_type,
        "category": c.category.value,
        "result": c.result.value,
        "started_at": to_utc_string(c.started_at),
        "completed_at": to_utc_string(c.completed_at),
        "duration_ms": c.duration_ms,
        "files_scanned": c.files_scanned,
        "findings_count": c.findings_count,
        "summary": c.summary,
        "error_message": c.error_message,
        "required": bool(c.required),
    }

def validation_failure_json(v: ExtensionValidationFailure) -> Dict[str, Any]:
    return {
        "id": v.id,
        "type": v.check_type,
        "rule_name": v.rule_name,
        "reason": v.reason,
        "date_detected": to_utc_string(v.detected_at),
        "enforced": bool(v.enforced),
    }

def threat_json(t: ExtensionThreat) -> Dict[str, Any]:
    return {
        "id": t.id,
        "type": t.scanner_name,
        "rule_name": t.rule_name,
        "reason": t.reason,
        "severity": t.severity,
        "file_name": t.file_name,
        "file_hash": t.file_hash,
        "file_extension": t.file_extension,
        "date_detected": to_utc_string(t.detected_at),
        "enforced": bool(t.enforced),
    }

def scan_json(scan: ExtensionScan, decision: Optional[AdminScanDecision] = None, *, detail: bool = False) -> Dict[str, Any]:
    """
    List rows carry the identity, status and dates; detail adds the findings
    and the check-result history.
    """
    completed = to_utc_string(scan.completed_at)
    out = {
        "id": scan.id,
        "status": display_status(scan.status),
        "display_name": scan.extension_display_name or scan.extension_name,
        "namespace": scan.namespace_name,
        "extension_name": scan.extension_name,
        "version": scan.extension_version,
        "target_platform": scan.target_platform,
        "universal_target_platform": scan.is_universal,
        "publisher": scan.publisher,
        "publisher_url": scan.publisher_url,
        "date_scan_started": to_utc_string(scan.started_at),
        "date_scan_ended": completed,
        "date_quarantined": completed if scan.status == ScanStatus.QUARANTINED else None,
        "date_rejected": completed if scan.status == ScanStatus.REJECTED else None,
        "error_message": scan.error_message,
        "admin_decision": admin_decision_json(decision),
    }
    if detail:
        out["validation_failures"] = [validation_failure_json(v) for v in scan.validation_failures]
        out["threats"] = [threat_json(t) for t in scan.threats]
        out["check_results"] = [check_result_json(c) for c in scan.check_results]
    return out

def file_decision_json(f: FileDecision) -> Dict[str, Any]:
    return {
        "id": f.id,
        "file_hash": f.file_hash,
        "file_name": f.file_name,
        "file_type": f.file_type,
        "decision": decision_label(f.decision),
        "decided_by": f.decided_by,
        "date_decided": to_utc_string(f.decided_at),
        "display_name": f.display_name,
        "namespace": f.namespace_name,
        "extension_name": f.extension_name,
        "publisher": f.publisher,
        "version": f.version,
        "scan_id": f.scan_id,
    }
