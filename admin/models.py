from datetime import datetime, timezone
from sqlalchemy import Index
from extensions import db

utcnow = lambda: datetime.now(timezone.utc)


class AdminAuditLog(db.Model):
    """
    Immutable audit of reviewer actions (scan and file decisions).
    """
    __tablename__ = "admin_audit_logs"
    __table_args__ = (
        Index("ix_admin_audit_logs_actor_created", "actor", "created_at"),
        Index("ix_admin_audit_logs_subject", "subject_type", "subject_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    actor = db.Column(db.String(255), nullable=False)            # reviewer login from the JWT
    action = db.Column(db.String(64), nullable=False)            # e.g. "scans.allow", "files.block"
    subject_type = db.Column(db.String(32), nullable=False)      # "scan" | "file"
    subject_id = db.Column(db.Integer)
    message = db.Column(db.String(1024), nullable=False)
    success = db.Column(db.Boolean, default=True, nullable=False, index=True)
    ip = db.Column(db.String(64))
    user_agent = db.Column(db.String(255))
    meta = db.Column(db.JSON)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<AdminAuditLog action={self.action} subject={self.subject_type}:{self.subject_id}>"
