# admin/services/scan_service.py
from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from admin.errors import Unprocessable
from admin.filters import ScanFilter
from admin.repositories.scans_repo import SORT_FIELDS, ScansRepo
from admin.services import BaseService
from scanning.lifecycle import stat_key
from scanning.models import AdminScanDecision, Decision, ExtensionScan, ScanStatus


def resolve_sort(sort_by: Optional[str], sort_order: Optional[str], *, fields: Dict[str, str],
                 default: str) -> Tuple[str, bool]:
    """(sortBy, sortOrder) query values -> (column key, ascending)."""
    key = (sort_by or default).strip().lower()
    if key not in fields:
        raise Unprocessable(f"Unsupported sortBy value: {sort_by}", details={"allowed": sorted(fields)})
    order = (sort_order or "desc").strip().lower()
    if order not in ("asc", "desc"):
        raise Unprocessable(f"Unsupported sortOrder value: {sort_order}", details={"allowed": ["asc", "desc"]})
    return fields[key], order == "asc"


class ScanService(BaseService):
    """Read side of the reviewer Scans page: list, detail, statistics."""

    def __init__(self):
        super().__init__()
        self.repo = ScansRepo(self.session)

    def list_scans(
        self,
        f: ScanFilter,
        *,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        offset: int = 0,
        size: Optional[int] = 10,
    ) -> Tuple[List[Tuple[ExtensionScan, Optional[AdminScanDecision]]], int]:
        sort_key, ascending = resolve_sort(sort_by, sort_order, fields=SORT_FIELDS, default="scanEndTime")
        return self.repo.list_scans(f, sort_key=sort_key, ascending=ascending, offset=offset, size=size)

    def count(self, f: ScanFilter) -> int:
        return self.repo.count_scans(f)

    def scan_detail(self, scan_id: int) -> ExtensionScan:
        return self.ensure_found(self.repo.get_detailed(scan_id), message="Scan not found")

    def counts(self, f: ScanFilter) -> Dict[str, int]:
        """
        Per-status counts plus ALLOWED / BLOCKED / NEEDS_REVIEW, all scoped to
        the same filter. NEEDS_REVIEW is clamped at zero.
        """
        by_status = self.repo.count_by_status(f)
        decisions = self.repo.count_decisions(f)

        out = {stat_key(st): n for st, n in by_status.items()}
        allowed = decisions[Decision.ALLOWED]
        blocked = decisions[Decision.BLOCKED]
        out["ALLOWED"] = allowed
        out["BLOCKED"] = blocked
        out["NEEDS_REVIEW"] = max(0, by_status[ScanStatus.QUARANTINED] - (allowed + blocked))
        return out

    def filter_options(self) -> Dict[str, List[str]]:
        return {
            "validation_types": self.repo.distinct_check_types(),
            "threat_scanner_names": self.repo.distinct_scanner_names(),
        }
