from typing import Any, Optional, Tuple
from sqlalchemy import func, select
from extensions import db

class BaseRepo:
    def __init__(self, session=None):
        self.session = session or db.session

    def add(self, obj: Any):
        self.session.add(obj)
        return obj

    def delete(self, obj: Any):
        self.session.delete(obj)

    def flush(self):
        self.session.flush()

    def count(self, stmt) -> int:
        """COUNT(*) over any select, wrapped as a subquery."""
        return int(self.session.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0)

    def paginate(self, stmt, offset: int, size: Optional[int]) -> Tuple[list, int]:
        total = self.count(stmt)
        page = stmt.offset(offset)
        if size is not None:
            page = page.limit(size)
        items = self.session.execute(page).all()
        return items, total
