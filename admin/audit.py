from typing import Any, Dict, Optional
from flask import current_app, has_request_context, request
from extensions import db
from admin.models import AdminAuditLog

def record_admin_action(
    *,
    actor: str,
    action: str,
    message: str,
    subject_type: str,
    subject_id: Optional[int],
    success: bool = True,
    meta: Optional[Dict[str, Any]] = None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> bool:
    """
    Best-effort: a failed audit write is rolled back and logged, never raised.
    Must be called after the audited change has been committed.
    """
    if has_request_context():
        ip = ip or request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = user_agent or request.headers.get("User-Agent")
    log = AdminAuditLog(
        actor=actor,
        action=action,
        subject_type=subject_type,
        subject_id=subject_id,
        message=message[:1024],
        success=success,
        ip=ip,
        user_agent=(user_agent or None) and user_agent[:255],
        meta=meta or {},
    )
    try:
        db.session.add(log)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[audit] failed to record %s by %s", action, actor)
        return False
    current_app.logger.info("[audit] %s: %s", actor, message)
    return True
