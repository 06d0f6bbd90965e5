# admin/repositories/files_repo.py
from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import String, and_, asc, desc, func, or_, select, true

from admin.filters import FileFilter
from admin.repositories import BaseRepo
from scanning.models import Decision, FileDecision

SORT_FIELDS = {
    "datedecided": "decided_at",
    "filename": "file_name",
    "publisher": "publisher",
    "namespace": "namespace_name",
}


def _contains(col, needle: str):
    return func.lower(col, type_=String).contains(needle, autoescape=True)


class FilesRepo(BaseRepo):

    def find_by_hash(self, file_hash: str) -> Optional[FileDecision]:
        return self.session.execute(
            select(FileDecision).where(FileDecision.file_hash == file_hash)
        ).scalar_one_or_none()

    def find_by_id(self, file_id: int) -> Optional[FileDecision]:
        return self.session.get(FileDecision, file_id)

    def find_blocked(self, hashes: Iterable[str]) -> List[FileDecision]:
        hashes = sorted({h for h in hashes if h})
        if not hashes:
            return []
        fd = FileDecision
        return list(self.session.execute(
            select(fd).where(fd.file_hash.in_(hashes), fd.decision == Decision.BLOCKED).order_by(fd.id)
        ).scalars())

    def upsert(self, file_hash: str, decision: Decision, decided_by: str, decided_at: datetime,
               **provenance) -> Tuple[FileDecision, bool]:
        """
        Last write wins on decision/decider/timestamp. Provenance is only
        filled in when the row is created. Returns (row, created).
        """
        row = self.find_by_hash(file_hash)
        created = row is None
        if created:
            row = FileDecision(file_hash=file_hash, **provenance)
            self.session.add(row)
        row.decision = decision
        row.decided_by = decided_by
        row.decided_at = decided_at
        self.session.flush()
        return row, created

    # ---- listing ----
    def predicate(self, f: FileFilter):
        fd = FileDecision
        where = []
        if f.decision is not None:
            where.append(fd.decision == f.decision)
        if f.publisher:
            where.append(_contains(fd.publisher, f.publisher))
        if f.namespace:
            where.append(_contains(fd.namespace_name, f.namespace))
        if f.name:
            where.append(or_(
                _contains(fd.extension_name, f.name),
                _contains(fd.display_name, f.name),
                _contains(fd.file_name, f.name),
            ))
        if f.decided_from is not None:
            where.append(fd.decided_at >= f.decided_from)
        if f.decided_to is not None:
            where.append(fd.decided_at <= f.decided_to)
        return and_(*where) if where else true()

    def list_files(
        self,
        f: FileFilter,
        *,
        sort_key: str = "decided_at",
        ascending: bool = False,
        offset: int = 0,
        size: Optional[int] = None,
    ) -> Tuple[List[FileDecision], int]:
        fd = FileDecision
        direction = asc if ascending else desc
        stmt = (
            select(fd)
            .where(self.predicate(f))
            .order_by(direction(getattr(fd, sort_key)), direction(fd.id))
        )
        rows, total = self.paginate(stmt, offset, size)
        return [r[0] for r in rows], total

    def count_by_decision(self, decided_from: Optional[datetime] = None,
                          decided_to: Optional[datetime] = None) -> Dict[Decision, int]:
        fd = FileDecision
        q = select(fd.decision, func.count(fd.id)).group_by(fd.decision)
        if decided_from is not None:
            q = q.where(fd.decided_at >= decided_from)
        if decided_to is not None:
            q = q.where(fd.decided_at <= decided_to)
        counts = {d: 0 for d in Decision}
        for decision, n in self.session.execute(q).all():
            counts[decision] = int(n or 0)
        return counts
