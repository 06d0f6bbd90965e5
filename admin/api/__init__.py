from flask import Blueprint, jsonify, current_app
from admin.errors import AdminError, RateLimited, ServerError

admin_api_bp = Blueprint("admin_api", __name__, url_prefix="/admin/api")

# Health probe
@admin_api_bp.get("/_health")
def _health():
    return jsonify({"ok": True, "service": "admin_api"}), 200

# Centralized error handling for AdminError and unexpected exceptions
@admin_api_bp.app_errorhandler(AdminError)
def handle_admin_error(err: AdminError):
    return jsonify(err.to_dict()), err.status_code

@admin_api_bp.app_errorhandler(429)
def handle_rate_limited(err):
    payload = RateLimited("Too many requests", details={"limit": str(getattr(err, "description", ""))}).to_dict()
    return jsonify(payload), 429

@admin_api_bp.app_errorhandler(Exception)
def handle_uncaught_error(err: Exception):
    # werkzeug HTTP errors (404 routing, 405) keep their status
    code = getattr(err, "code", None)
    if isinstance(code, int) and 400 <= code < 500:
        payload = AdminError(getattr(err, "description", "") or "Request error",
                             status_code=code, code="bad_request" if code != 404 else "not_found").to_dict()
        return jsonify(payload), code
    # In debug, include a short repr; in prod, hide internals.
    payload = ServerError("Something went wrong").to_dict()
    if current_app and current_app.debug:
        payload["error"]["details"] = {"exception": repr(err)}
    current_app.logger.exception("[admin_api] unhandled error: %r", err)
    return jsonify(payload), 500

from . import scans, files
