from contextlib import contextmanager
from typing import Any
from sqlalchemy.exc import IntegrityError
from flask import current_app
from extensions import db
from admin.errors import AdminError, Conflict, NotFound

class BaseService:
    def __init__(self):
        self.session = db.session

    @contextmanager
    def atomic(self, *, conflict_message: str = "Conflicting write"):
        """Commit on success; any exception rolls the whole unit back."""
        try:
            yield
            self.session.commit()
        except AdminError:
            self.session.rollback()
            raise
        except IntegrityError as e:
            self.session.rollback()
            current_app.logger.warning("[services] integrity error: %s", e.orig)
            raise Conflict(conflict_message)
        except Exception:
            self.session.rollback()
            raise

    def ensure_found(self, obj: Any, *, message: str = "Object not found"):
        if obj is None:
            raise NotFound(message)
        return obj
