# admin/repositories/scans_repo.py
from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from sqlalchemy import String, and_, asc, case, desc, func, not_, or_, select, true
from sqlalchemy.orm import selectinload

from admin.filters import AdminDecisionFilter, ScanFilter
from admin.repositories import BaseRepo
from scanning.models import (
    AdminScanDecision, Decision, ExtensionScan, ExtensionThreat,
    ExtensionValidationFailure, ScanStatus,
)

# sortBy (lower-cased) -> column key understood by _order_by
SORT_FIELDS = {
    "scanendtime": "completed_at",
    "scanstarttime": "started_at",
    "displayname": "display_name",
    "publisher": "publisher",
    "status": "status",
}


def _contains(col, needle: str):
    return func.lower(col, type_=String).contains(needle, autoescape=True)


class ScansRepo(BaseRepo):

    # ---- the one predicate ----
    def predicate(self, f: ScanFilter):
        """
        WHERE clause shared by list, count, per-status and decision counts.
        Only references ExtensionScan plus correlated EXISTS subqueries,
        so it can sit under any select rooted at extension_scans.
        """
        s, vf, th, d = ExtensionScan, ExtensionValidationFailure, ExtensionThreat, AdminScanDecision
        enforced = f.enforcement.enforced_only
        where = []

        if f.statuses:
            where.append(s.status.in_(sorted(f.statuses, key=lambda st: st.value)))
        if f.namespace:
            where.append(_contains(s.namespace_name, f.namespace))
        if f.publisher:
            where.append(_contains(s.publisher, f.publisher))
        if f.name:
            where.append(or_(_contains(s.extension_name, f.name), _contains(s.extension_display_name, f.name)))
        if f.started_from is not None:
            where.append(s.started_at >= f.started_from)
        if f.started_to is not None:
            where.append(s.started_at <= f.started_to)

        # enforcement narrows the named check types / scanners when given,
        # otherwise it applies to any finding of the scan
        if f.check_types:
            conds = [vf.scan_id == s.id, vf.check_type.in_(sorted(f.check_types))]
            if enforced is not None:
                conds.append(vf.enforced == enforced)
            where.append(select(vf.id).where(*conds).correlate(s).exists())
        if f.scanner_names:
            conds = [th.scan_id == s.id, th.scanner_name.in_(sorted(f.scanner_names))]
            if enforced is not None:
                conds.append(th.enforced == enforced)
            where.append(select(th.id).where(*conds).correlate(s).exists())
        if enforced is not None and not f.check_types and not f.scanner_names:
            where.append(or_(
                select(vf.id).where(vf.scan_id == s.id, vf.enforced == enforced).correlate(s).exists(),
                select(th.id).where(th.scan_id == s.id, th.enforced == enforced).correlate(s).exists(),
            ))

        if f.admin_decisions:
            branches = []
            if AdminDecisionFilter.ALLOWED in f.admin_decisions:
                branches.append(select(d.id).where(d.scan_id == s.id, d.decision == Decision.ALLOWED).correlate(s).exists())
            if AdminDecisionFilter.BLOCKED in f.admin_decisions:
                branches.append(select(d.id).where(d.scan_id == s.id, d.decision == Decision.BLOCKED).correlate(s).exists())
            if AdminDecisionFilter.NEEDS_REVIEW in f.admin_decisions:
                branches.append(and_(
                    s.status == ScanStatus.QUARANTINED,
                    not_(select(d.id).where(d.scan_id == s.id).correlate(s).exists()),
                ))
            where.append(or_(*branches))

        return and_(*where) if where else true()

    # ---- list / count ----
    def _order_by(self, sort_key: str, ascending: bool) -> list:
        s = ExtensionScan
        direction = asc if ascending else desc
        if sort_key == "completed_at":
            # in-flight scans first whatever the direction, then start time breaks ties
            in_flight_first = case((s.completed_at.is_(None), 0), else_=1)
            return [asc(in_flight_first), direction(s.completed_at), direction(s.started_at), direction(s.id)]
        col = {
            "started_at": s.started_at,
            "display_name": func.coalesce(s.extension_display_name, s.extension_name),
            "publisher": s.publisher,
            "status": s.status,
        }[sort_key]
        return [direction(col), direction(s.id)]

    def list_scans(
        self,
        f: ScanFilter,
        *,
        sort_key: str = "completed_at",
        ascending: bool = False,
        offset: int = 0,
        size: Optional[int] = None,
    ) -> Tuple[List[Tuple[ExtensionScan, Optional[AdminScanDecision]]], int]:
        s, d = ExtensionScan, AdminScanDecision
        stmt = (
            select(s, d)
            .outerjoin(d, d.scan_id == s.id)
            .where(self.predicate(f))
            .order_by(*self._order_by(sort_key, ascending))
        )
        page = stmt.offset(offset)
        if size is not None:
            page = page.limit(size)
        rows = self.session.execute(page).all()
        total = self.count_scans(f)
        return [(r[0], r[1]) for r in rows], total

    def count_scans(self, f: ScanFilter) -> int:
        s = ExtensionScan
        q = select(func.count(s.id)).where(self.predicate(f))
        return int(self.session.execute(q).scalar() or 0)

    def count_by_status(self, f: ScanFilter) -> Dict[ScanStatus, int]:
        s = ExtensionScan
        rows = self.session.execute(
            select(s.status, func.count(s.id)).where(self.predicate(f)).group_by(s.status)
        ).all()
        counts = {st: 0 for st in ScanStatus}
        for status, n in rows:
            counts[status] = int(n or 0)
        return counts

    def count_decisions(self, f: ScanFilter) -> Dict[Decision, int]:
        """Decisions whose scan matches the same predicate as the status counts."""
        s, d = ExtensionScan, AdminScanDecision
        rows = self.session.execute(
            select(d.decision, func.count(d.id))
            .join(s, s.id == d.scan_id)
            .where(self.predicate(f))
            .group_by(d.decision)
        ).all()
        counts = {dec: 0 for dec in Decision}
        for decision, n in rows:
            counts[decision] = int(n or 0)
        return counts

    # ---- detail ----
    def get(self, scan_id: int) -> Optional[ExtensionScan]:
        return self.session.get(ExtensionScan, scan_id)

    def get_detailed(self, scan_id: int) -> Optional[ExtensionScan]:
        q = (
            select(ExtensionScan)
            .where(ExtensionScan.id == scan_id)
            .options(
                selectinload(ExtensionScan.check_results),
                selectinload(ExtensionScan.validation_failures),
                selectinload(ExtensionScan.threats),
                selectinload(ExtensionScan.admin_decision),
            )
        )
        return self.session.execute(q).scalar_one_or_none()

    def decision_for(self, scan_id: int) -> Optional[AdminScanDecision]:
        d = AdminScanDecision
        return self.session.execute(select(d).where(d.scan_id == scan_id)).scalar_one_or_none()

    def threats_for(self, scan_id: int) -> List[ExtensionThreat]:
        th = ExtensionThreat
        return list(self.session.execute(
            select(th).where(th.scan_id == scan_id).order_by(th.id)
        ).scalars())

    # ---- filter options ----
    def distinct_check_types(self) -> List[str]:
        vf = ExtensionValidationFailure
        return [r for r in self.session.execute(
            select(vf.check_type).distinct().order_by(vf.check_type)
        ).scalars()]

    def distinct_scanner_names(self) -> List[str]:
        th = ExtensionThreat
        return [r for r in self.session.execute(
            select(th.scanner_name).distinct().order_by(th.scanner_name)
        ).scalars()]
