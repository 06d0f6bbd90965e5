# admin/api/files.py
from admin.api import admin_api_bp
from admin.api.common import arg, get_json, ok, parse_offset_size
from admin.api.schemas import coerce_list, coerce_str, file_decision_json
from admin.filters import build_file_filter, parse_decision
from admin.permissions import require_scopes
from admin.services.file_service import FileService
from admin.services.time_ranges import parse_utc
from extensions import limiter

svc = FileService()


@admin_api_bp.get("/files")
@require_scopes("ADMIN_READ_SCOPE")
def list_files(_actor: str):
    f = build_file_filter(
        decision=arg("decision"),
        publisher=arg("publisher"),
        namespace=arg("namespace"),
        name=arg("name"),
        date_decided_from=arg("dateDecidedFrom"),
        date_decided_to=arg("dateDecidedTo"),
    )
    offset, size = parse_offset_size(default_size=18)
    rows, total = svc.list_files(f, sort_by=arg("sortBy"), sort_order=arg("sortOrder"), offset=offset, size=size)
    return ok([file_decision_json(r) for r in rows], meta={"offset": offset, "size": size, "total": total})


@admin_api_bp.get("/files/counts")
@require_scopes("ADMIN_READ_SCOPE")
def file_counts(_actor: str):
    return ok(svc.counts(
        parse_utc(arg("dateDecidedFrom"), "dateDecidedFrom"),
        parse_utc(arg("dateDecidedTo"), "dateDecidedTo"),
    ))


@admin_api_bp.get("/files/<int:file_id>")
@require_scopes("ADMIN_READ_SCOPE")
def file_detail(file_id: int, _actor: str):
    return ok(file_decision_json(svc.file_detail(file_id)))


@admin_api_bp.post("/files/decisions")
@require_scopes("ADMIN_READ_SCOPE", "ADMIN_REVIEW_SCOPE")
@limiter.limit("30 per minute")
def decide_files(_actor: str):
    body = get_json(required=("file_hashes", "decision"))
    hashes = coerce_list(body, "file_hashes")
    decision = parse_decision(coerce_str(body, "decision"))
    return ok(svc.decide_many(hashes, decision, _actor))


@admin_api_bp.delete("/files/decisions")
@require_scopes("ADMIN_READ_SCOPE", "ADMIN_REVIEW_SCOPE")
@limiter.limit("30 per minute")
def delete_files(_actor: str):
    body = get_json(required=("file_ids",))
    return ok(svc.delete_many(coerce_list(body, "file_ids"), _actor))
