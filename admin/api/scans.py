# admin/api/scans.py
from admin.api import admin_api_bp
from admin.api.common import arg, get_json, getlist, ok, parse_offset_size
from admin.api.schemas import coerce_list, coerce_str, scan_json
from admin.filters import build_scan_filter, parse_decision
from admin.permissions import require_scopes
from admin.services.decision_service import DecisionService
from admin.services.scan_service import ScanService
from extensions import limiter

svc = ScanService()
decisions = DecisionService()


def _scan_filter():
    return build_scan_filter(
        status=getlist("status"),
        namespace=arg("namespace"),
        publisher=arg("publisher"),
        name=arg("name"),
        date_started_from=arg("dateStartedFrom"),
        date_started_to=arg("dateStartedTo"),
        validation_type=getlist("validationType"),
        threat_scanner_name=getlist("threatScannerName"),
        enforcement=arg("enforcement"),
        admin_decision=getlist("adminDecision"),
    )


@admin_api_bp.get("/scans")
@require_scopes("ADMIN_READ_SCOPE")
def list_scans(_actor: str):
    f = _scan_filter()
    offset, size = parse_offset_size(default_size=10)
    rows, total = svc.list_scans(
        f, sort_by=arg("sortBy"), sort_order=arg("sortOrder"), offset=offset, size=size,
    )
    return ok(
        [scan_json(scan, decision) for scan, decision in rows],
        meta={"offset": offset, "size": size, "total": total},
    )


@admin_api_bp.get("/scans/counts")
@require_scopes("ADMIN_READ_SCOPE")
def scan_counts(_actor: str):
    return ok(svc.counts(_scan_filter()))


@admin_api_bp.get("/scans/filterOptions")
@require_scopes("ADMIN_READ_SCOPE")
def scan_filter_options(_actor: str):
    return ok(svc.filter_options())


@admin_api_bp.get("/scans/<int:scan_id>")
@require_scopes("ADMIN_READ_SCOPE")
def scan_detail(scan_id: int, _actor: str):
    scan = svc.scan_detail(scan_id)
    return ok(scan_json(scan, scan.admin_decision, detail=True))


@admin_api_bp.post("/scans/decisions")
@require_scopes("ADMIN_READ_SCOPE", "ADMIN_REVIEW_SCOPE")
@limiter.limit("30 per minute")
def decide_scans(_actor: str):
    body = get_json(required=("scan_ids", "decision"))
    scan_ids = coerce_list(body, "scan_ids")
    decision = parse_decision(coerce_str(body, "decision"))
    return ok(decisions.decide_many(scan_ids, decision, _actor))
