# admin/services/file_service.py
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flask import current_app

from admin.audit import record_admin_action
from admin.errors import AdminError, Unprocessable
from admin.filters import FileFilter
from admin.repositories.files_repo import SORT_FIELDS, FilesRepo
from admin.services import BaseService
from admin.services.scan_service import resolve_sort
from admin.services.time_ranges import now_utc
from scanning.models import Decision, FileDecision


class FileService(BaseService):
    """Hash-keyed allow/block list shared by every scan."""

    def __init__(self):
        super().__init__()
        self.repo = FilesRepo(self.session)

    # ---- reads ----
    def list_files(
        self,
        f: FileFilter,
        *,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        offset: int = 0,
        size: Optional[int] = 18,
    ) -> Tuple[List[FileDecision], int]:
        sort_key, ascending = resolve_sort(sort_by, sort_order, fields=SORT_FIELDS, default="dateDecided")
        return self.repo.list_files(f, sort_key=sort_key, ascending=ascending, offset=offset, size=size)

    def file_detail(self, file_id: int) -> FileDecision:
        return self.ensure_found(self.repo.find_by_id(file_id), message="File decision not found")

    def find(self, file_hash: str) -> Optional[FileDecision]:
        return self.repo.find_by_hash(file_hash)

    def find_blocked(self, hashes: Iterable[str]) -> List[FileDecision]:
        return self.repo.find_blocked(hashes)

    def counts(self, decided_from: Optional[datetime] = None, decided_to: Optional[datetime] = None) -> Dict[str, int]:
        by_decision = self.repo.count_by_decision(decided_from, decided_to)
        allowed = by_decision[Decision.ALLOWED]
        blocked = by_decision[Decision.BLOCKED]
        return {"allowed": allowed, "blocked": blocked, "total": allowed + blocked}

    # ---- writes ----
    def upsert(self, file_hash: str, decision: Decision, actor: str, **provenance) -> FileDecision:
        with self.atomic(conflict_message="File decision already exists"):
            row, _ = self.repo.upsert(file_hash, decision, actor, now_utc(), **provenance)
        return row

    def delete(self, file_id: int) -> None:
        with self.atomic():
            row = self.ensure_found(self.repo.find_by_id(file_id), message="File decision not found")
            self.repo.delete(row)

    def decide_many(self, hashes: Iterable[Any], decision: Decision, actor: str) -> Dict[str, Any]:
        def one(raw):
            file_hash = str(raw).strip() if raw is not None else ""
            if not file_hash:
                raise Unprocessable("Invalid file hash")
            self.upsert(file_hash, decision, actor)
            record_admin_action(
                actor=actor,
                action="files.allow" if decision == Decision.ALLOWED else "files.block",
                message=f"{'Allowed' if decision == Decision.ALLOWED else 'Blocked'} file {file_hash}",
                subject_type="file",
                subject_id=None,
                meta={"file_hash": file_hash},
            )
        return self._bulk(hashes, one, failure="Failed to create file decision")

    def delete_many(self, file_ids: Iterable[Any], actor: str) -> Dict[str, Any]:
        def one(raw):
            try:
                file_id = int(str(raw).strip())
            except ValueError:
                raise Unprocessable("Invalid file ID format")
            row = self.file_detail(file_id)
            label = row.file_name or row.file_hash
            self.delete(file_id)
            record_admin_action(
                actor=actor,
                action="files.delete",
                message=f"Deleted file decision #{file_id} for {label}",
                subject_type="file",
                subject_id=file_id,
            )
        return self._bulk(file_ids, one, failure="Failed to delete file decision")

    def _bulk(self, items: Iterable[Any], fn, *, failure: str) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        for raw in items:
            error = None
            try:
                fn(raw)
            except AdminError as e:
                error = e.message
            except Exception:
                self.session.rollback()
                current_app.logger.exception("[files] bulk item %r failed", raw)
                error = failure
            results.append({"id": str(raw), "success": error is None, "error": error})
        successful = sum(1 for r in results if r["success"])
        return {
            "processed": len(results),
            "successful": successful,
            "failed": len(results) - successful,
            "results": results,
        }
