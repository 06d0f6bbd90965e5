from typing import Any, Dict, Iterable, List, Optional, Tuple
from flask import request, jsonify
from admin.errors import BadRequest, Unprocessable

def ok(data: Any = None, meta: Optional[Dict[str, Any]] = None, status: int = 200):
    return jsonify({"ok": True, "data": data, "meta": meta or {}}), status

def get_json(*, required: Iterable[str] = (), optional: Iterable[str] = ()):
    if not request.is_json:
        raise BadRequest("Expected JSON body")
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Expected a JSON object")
    missing = [k for k in required if k not in data]
    if missing:
        raise Unprocessable("Missing required fields", details={"fields": missing})
    allowed = set(required) | set(optional)
    unknown = [k for k in data.keys() if k not in allowed]
    if unknown:
        # surfaced, not rejected
        data["_unknown"] = unknown
    return data

def _non_negative_int(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise Unprocessable(f"Parameter '{name}' must be an integer", details={"param": name, "value": raw})
    if value < 0:
        raise Unprocessable(f"Parameter '{name}' must be >= 0", details={"param": name, "value": raw})
    return value

def parse_offset_size(default_size: int, max_size: int = 500) -> Tuple[int, int]:
    offset = _non_negative_int("offset", 0)
    size = _non_negative_int("size", default_size)
    if size > max_size:
        raise Unprocessable(
            f"Parameter 'size' must be <= {max_size}",
            details={"param": "size", "value": size, "max": max_size},
        )
    return offset, size

def getlist(name: str) -> List[str]:
    """Repeated params; comma splitting is left to the filter parsers."""
    return request.args.getlist(name)

def arg(name: str) -> Optional[str]:
    return request.args.get(name)
