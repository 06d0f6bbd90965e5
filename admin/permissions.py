# Scope-based guards for the reviewer API (scans.read, scans.review)

from functools import wraps
from typing import Set
from flask import current_app
from flask_jwt_extended import verify_jwt_in_request, get_jwt, get_jwt_identity
from admin.errors import Forbidden, Unauthorized

def _collect_scopes(claims) -> Set[str]:
    """
    Scopes come from the `scopes` claim; it can be a list or a dict of {scope: true}.
    A `roles` claim containing "admin" grants every scope.
    """
    scopes = set()
    payload = claims.get("scopes") or {}
    if isinstance(payload, dict):
        scopes |= {k for k, v in payload.items() if v}
    elif isinstance(payload, (list, tuple, set)):
        scopes |= set(payload)
    elif isinstance(payload, str):
        scopes |= {s for s in payload.split() if s}
    return scopes

def _is_admin(claims) -> bool:
    roles = claims.get("roles") or []
    return "admin" in roles

def require_scopes(*config_keys: str):
    """
    Decorator for API routes. Ensures JWT + required scopes.
    Scope names are looked up in app config so deployments can rename them.
    The reviewer identity is passed to the view as `_actor`.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                verify_jwt_in_request()
            except Exception as e:
                raise Unauthorized("Authorization required", details={"reason": str(e)})
            actor = get_jwt_identity()
            if not actor or not str(actor).strip():
                raise Unauthorized("Missing identity")
            claims = get_jwt()
            required = [current_app.config[k] for k in config_keys]
            if not _is_admin(claims):
                have = _collect_scopes(claims)
                missing = [s for s in required if s not in have]
                if missing:
                    raise Forbidden("Insufficient permissions", details={"required": required, "missing": missing})
            kwargs["_actor"] = str(actor)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
