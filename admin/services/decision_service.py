# admin/services/decision_service.py
"""
Reviewer verdicts on quarantined scans.

A verdict is persisted together with the file-level decisions it implies in
one transaction. Activation and the audit entry happen after the commit and
cannot undo it.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from admin.audit import record_admin_action
from admin.errors import AdminError, Conflict, InvalidState
from admin.repositories.files_repo import FilesRepo
from admin.repositories.scans_repo import ScansRepo
from admin.services import BaseService
from admin.services.time_ranges import now_utc
from scanning.activation import get_activator
from scanning.lifecycle import accepts_decision, display_status
from scanning.models import AdminScanDecision, Decision, ExtensionScan, ExtensionThreat


def format_decision_message(scan: ExtensionScan, decision: Decision, threat_count: int, activated: bool) -> str:
    action = "Allowed" if decision == Decision.ALLOWED else "Blocked"
    details = []
    if threat_count > 0:
        details.append(f"{threat_count} threat{'' if threat_count == 1 else 's'} reviewed")
    if decision == Decision.ALLOWED:
        details.append("extension activated" if activated else "activation failed")
    suffix = f" ({', '.join(details)})" if details else ""
    return f"{action} scan #{scan.id} for extension {scan.extension_label}{suffix}"


class DecisionService(BaseService):

    def __init__(self):
        super().__init__()
        self.scans = ScansRepo(self.session)
        self.files = FilesRepo(self.session)

    def _propagate_to_files(self, scan: ExtensionScan, threats: List[ExtensionThreat],
                            decision: Decision, actor: str, decided_at) -> int:
        """One FileDecision per distinct hash among enforced threats. Returns rows touched."""
        seen = set()
        for t in threats:
            if not t.enforced or not t.file_hash or t.file_hash in seen:
                continue
            seen.add(t.file_hash)
            try:
                self.files.upsert(
                    t.file_hash, decision, actor, decided_at,
                    file_name=t.file_name,
                    file_type=t.file_extension,
                    display_name=scan.extension_display_name or scan.extension_name,
                    namespace_name=scan.namespace_name,
                    extension_name=scan.extension_name,
                    publisher=scan.publisher,
                    version=scan.extension_version,
                    scan_id=scan.id,
                )
            except IntegrityError:
                # another transaction created the row for this hash first
                self.session.rollback()
                raise Conflict(
                    f"File decision for hash {t.file_hash} was written concurrently; retry the decision",
                    details={"file_hash": t.file_hash},
                )
        return len(seen)

    def _activate(self, scan: ExtensionScan) -> bool:
        try:
            return bool(get_activator().activate(
                scan.namespace_name, scan.extension_name, scan.extension_version, scan.target_platform,
            ))
        except Exception:
            current_app.logger.exception("[decisions] activation raised for scan #%s", scan.id)
            return False

    def decide(self, scan_id: int, decision: Decision, actor: str) -> Dict[str, Any]:
        decided_at = now_utc()
        with self.atomic():
            scan = self.ensure_found(self.scans.get(scan_id), message="Scan not found")
            if not accepts_decision(scan.status):
                raise InvalidState(
                    f"Scan not in quarantined status: {display_status(scan.status)}",
                    details={"status": display_status(scan.status)},
                )
            existing = scan.admin_decision
            if existing is not None:
                raise Conflict(
                    f"Decision already exists: {existing.decision.value}",
                    details={"decision": existing.decision.value},
                )

            self.scans.add(AdminScanDecision(
                scan_id=scan.id, decision=decision, decided_by=actor, decided_at=decided_at,
            ))
            try:
                self.scans.flush()
            except IntegrityError:
                # lost the race against a concurrent verdict on the same scan
                self.session.rollback()
                existing = self.scans.decision_for(scan_id)
                if existing is None:
                    raise Conflict("Decision already exists")
                raise Conflict(
                    f"Decision already exists: {existing.decision.value}",
                    details={"decision": existing.decision.value},
                )

            threats = self.scans.threats_for(scan.id)
            files_updated = self._propagate_to_files(scan, threats, decision, actor, decided_at)

        activated = False
        if decision == Decision.ALLOWED:
            activated = self._activate(scan)

        message = format_decision_message(scan, decision, len(threats), activated)
        current_app.logger.info("[decisions] %s by %s", message, actor)
        record_admin_action(
            actor=actor,
            action="scans.allow" if decision == Decision.ALLOWED else "scans.block",
            message=message,
            subject_type="scan",
            subject_id=scan.id,
            meta={"threats": len(threats), "files_updated": files_updated, "activated": activated},
        )
        return {
            "scan_id": scan.id,
            "decision": decision.value,
            "files_updated": files_updated,
            "activated": activated if decision == Decision.ALLOWED else None,
        }

    def decide_many(self, scan_ids: Iterable[Any], decision: Decision, actor: str) -> Dict[str, Any]:
        """Each id is its own unit of work; one failure never stops the rest."""
        results: List[Dict[str, Any]] = []
        successful = failed = 0
        for raw in scan_ids:
            ok_, error = self._decide_one(raw, decision, actor)
            results.append({"id": str(raw), "success": ok_, "error": error})
            if ok_:
                successful += 1
            else:
                failed += 1
        return {"processed": len(results), "successful": successful, "failed": failed, "results": results}

    def _decide_one(self, raw: Any, decision: Decision, actor: str) -> Tuple[bool, Any]:
        try:
            scan_id = _parse_id(raw)
        except ValueError:
            return False, "Invalid scan ID format"
        try:
            self.decide(scan_id, decision, actor)
        except AdminError as e:
            return False, e.message
        except Exception:
            self.session.rollback()
            current_app.logger.exception("[decisions] failed to decide scan #%s", scan_id)
            return False, "Failed to create scan decision"
        return True, None


def _parse_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError(raw)
    if isinstance(raw, int):
        return raw
    return int(str(raw).strip())
