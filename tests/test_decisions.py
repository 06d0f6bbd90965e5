import pytest
from sqlalchemy import insert
from sqlalchemy.orm.attributes import set_committed_value

from admin.errors import Conflict, InvalidState, NotFound
from admin.models import AdminAuditLog
from admin.repositories.files_repo import FilesRepo
from admin.services import BaseService
from admin.services.decision_service import DecisionService, format_decision_message
from extensions import db
from scanning.models import AdminScanDecision, Decision, FileDecision, ScanStatus

from conftest import BASE_TIME, threat


@pytest.fixture
def svc(app):
    return DecisionService()


class TestDecide:
    def test_blocking_writes_decision_files_and_audit(self, svc, make_scan, activator):
        scan = make_scan(threats=[
            threat(file_hash="aaa", file_name="src/evil.js"),
            threat(file_hash="aaa", rule="other-rule", file_name="src/evil.js"),
            threat(file_hash="bbb", enforced=False),
            threat(file_hash=None),
        ])

        result = svc.decide(scan.id, Decision.BLOCKED, "admin1")

        assert result["files_updated"] == 1
        decision = db.session.query(AdminScanDecision).filter_by(scan_id=scan.id).one()
        assert decision.decision is Decision.BLOCKED
        assert decision.decided_by == "admin1"

        files = db.session.query(FileDecision).all()
        assert [(f.file_hash, f.decision) for f in files] == [("aaa", Decision.BLOCKED)]
        assert files[0].file_name == "src/evil.js"
        assert files[0].file_type == "js"
        assert files[0].namespace_name == "acme"
        assert files[0].scan_id == scan.id

        assert activator.calls == []
        log = db.session.query(AdminAuditLog).one()
        assert log.action == "scans.block"
        assert log.message.startswith(f"Blocked scan #{scan.id} for extension acme.widget v")
        assert log.message.endswith("(4 threats reviewed)")

    def test_decision_leaves_status_untouched(self, svc, make_scan):
        scan = make_scan(threats=[threat()])
        svc.decide(scan.id, Decision.ALLOWED, "admin1")
        assert db.session.get(type(scan), scan.id).status is ScanStatus.QUARANTINED

    def test_allowing_activates_the_exact_version(self, svc, make_scan, activator):
        scan = make_scan(target_platform="linux-x64", threats=[threat()])
        result = svc.decide(scan.id, Decision.ALLOWED, "admin1")

        assert result["activated"] is True
        assert activator.calls == [("acme", "widget", scan.extension_version, "linux-x64")]
        assert db.session.query(FileDecision).one().decision is Decision.ALLOWED
        assert db.session.query(AdminAuditLog).one().message.endswith("(1 threat reviewed, extension activated)")

    @pytest.mark.parametrize("outcome", ["false", "raises"])
    def test_activation_failure_keeps_the_decision(self, svc, make_scan, activator, outcome):
        if outcome == "false":
            activator.result = False
        else:
            activator.error = RuntimeError("registry down")
        scan = make_scan()

        result = svc.decide(scan.id, Decision.ALLOWED, "admin1")

        assert result["activated"] is False
        assert db.session.query(AdminScanDecision).filter_by(scan_id=scan.id).count() == 1
        assert db.session.query(AdminAuditLog).one().message.endswith("(activation failed)")

    def test_existing_file_decision_is_overwritten(self, svc, make_scan):
        first = make_scan(threats=[threat(file_hash="shared", file_name="a.js")])
        second = make_scan(extension="other", threats=[threat(file_hash="shared", file_name="b.js")])

        svc.decide(first.id, Decision.ALLOWED, "admin1")
        svc.decide(second.id, Decision.BLOCKED, "admin2")

        row = FilesRepo().find_by_hash("shared")
        assert row.decision is Decision.BLOCKED
        assert row.decided_by == "admin2"
        # provenance stays with the scan that created the row
        assert row.file_name == "a.js"
        assert db.session.query(FileDecision).count() == 1


class TestPreconditions:
    def test_missing_scan(self, svc):
        with pytest.raises(NotFound):
            svc.decide(9999, Decision.BLOCKED, "admin1")

    @pytest.mark.parametrize("status,label", [
        (ScanStatus.PASSED, "PASSED"),
        (ScanStatus.REJECTED, "AUTO REJECTED"),
        (ScanStatus.SCANNING, "SCANNING"),
    ])
    def test_wrong_status_names_it(self, svc, make_scan, status, label):
        scan = make_scan(status=status)
        with pytest.raises(InvalidState) as exc:
            svc.decide(scan.id, Decision.ALLOWED, "admin1")
        assert exc.value.message == f"Scan not in quarantined status: {label}"

    def test_second_decision_conflicts_and_changes_nothing(self, svc, make_scan, activator):
        scan = make_scan(threats=[threat()])
        svc.decide(scan.id, Decision.BLOCKED, "admin1")

        with pytest.raises(Conflict) as exc:
            svc.decide(scan.id, Decision.ALLOWED, "admin2")

        assert exc.value.message == "Decision already exists: BLOCKED"
        assert db.session.query(FileDecision).one().decision is Decision.BLOCKED
        assert activator.calls == []
        assert db.session.query(AdminAuditLog).count() == 1


class TestDecideMany:
    def test_failures_are_isolated_per_id(self, svc, make_scan):
        good = make_scan()
        passed = make_scan(status=ScanStatus.PASSED)

        out = svc.decide_many([str(good.id), "nope", 424242, passed.id, good.id], Decision.BLOCKED, "admin1")

        assert out["processed"] == 5
        assert out["successful"] == 1
        assert out["failed"] == 4
        errors = [r["error"] for r in out["results"]]
        assert errors == [
            None,
            "Invalid scan ID format",
            "Scan not found",
            "Scan not in quarantined status: PASSED",
            "Decision already exists: BLOCKED",
        ]


def test_message_without_threats():
    class Scan:
        id = 7
        extension_label = "acme.widget v1.2.3"
    assert format_decision_message(Scan(), Decision.BLOCKED, 0, False) == "Blocked scan #7 for extension acme.widget v1.2.3"


class TestStoreConflicts:
    def test_concurrent_verdict_names_the_winner(self, svc, make_scan, activator):
        scan = make_scan(threats=[threat()])
        scan_id = scan.id
        # another reviewer's verdict lands after this session loaded the scan
        db.session.execute(insert(AdminScanDecision).values(
            scan_id=scan_id, decision=Decision.BLOCKED, decided_by="admin2", decided_at=BASE_TIME,
        ))
        db.session.commit()
        set_committed_value(scan, "admin_decision", None)

        with pytest.raises(Conflict) as exc:
            svc.decide(scan_id, Decision.ALLOWED, "admin1")

        assert exc.value.message == "Decision already exists: BLOCKED"
        assert exc.value.details == {"decision": "BLOCKED"}
        assert db.session.query(AdminScanDecision).filter_by(scan_id=scan_id).one().decided_by == "admin2"
        assert db.session.query(FileDecision).count() == 0
        assert activator.calls == []

    def test_concurrent_file_hash_rolls_back_the_verdict(self, svc, make_scan, monkeypatch):
        db.session.add(FileDecision(file_hash="shared", decision=Decision.ALLOWED, decided_by="admin2"))
        db.session.commit()
        scan = make_scan(threats=[threat(file_hash="shared")])
        # the row is invisible when checked, as if inserted by a parallel transaction
        monkeypatch.setattr(FilesRepo, "find_by_hash", lambda self, file_hash: None)

        with pytest.raises(Conflict) as exc:
            svc.decide(scan.id, Decision.BLOCKED, "admin1")

        assert exc.value.message.startswith("File decision for hash shared was written concurrently")
        assert db.session.query(AdminScanDecision).count() == 0
        row = db.session.query(FileDecision).one()
        assert (row.decision, row.decided_by) == (Decision.ALLOWED, "admin2")

    def test_unique_violation_becomes_conflict_without_driver_text(self, app):
        db.session.add(FileDecision(file_hash="dup", decision=Decision.BLOCKED, decided_by="admin1"))
        db.session.commit()
        service = BaseService()

        with pytest.raises(Conflict) as exc:
            with service.atomic(conflict_message="File decision already exists"):
                db.session.add(FileDecision(file_hash="dup", decision=Decision.ALLOWED, decided_by="admin2"))
                db.session.flush()

        assert exc.value.message == "File decision already exists"
        assert exc.value.details == {}
        assert db.session.query(FileDecision).one().decision is Decision.BLOCKED
