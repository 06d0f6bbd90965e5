from datetime import timedelta

import pytest

from admin.errors import Unprocessable
from admin.filters import (
    AdminDecisionFilter, Enforcement, ScanFilter, build_scan_filter,
)
from admin.services.decision_service import DecisionService
from admin.services.scan_service import ScanService
from extensions import db
from scanning.models import Decision, ScanStatus

from conftest import BASE_TIME, failure, threat


def ids(rows):
    return [scan.id for scan, _ in rows]


@pytest.fixture
def svc(app):
    return ScanService()


class TestFilterParsing:
    def test_status_tokens_accept_repeats_and_commas(self):
        f = build_scan_filter(status=["PASSED,AUTO REJECTED", "ERROR"])
        assert f.statuses == {ScanStatus.PASSED, ScanStatus.REJECTED, ScanStatus.ERRORED}

    def test_unknown_status_is_validation_error(self):
        with pytest.raises(Unprocessable):
            build_scan_filter(status=["REJECTED"])

    def test_enforcement_tokens(self):
        assert build_scan_filter(enforcement="notEnforced").enforcement is Enforcement.NOT_ENFORCED
        assert build_scan_filter().enforcement is Enforcement.ALL
        with pytest.raises(Unprocessable):
            build_scan_filter(enforcement="sometimes")

    def test_bad_date_names_the_parameter(self):
        with pytest.raises(Unprocessable) as exc:
            build_scan_filter(date_started_to="yesterday")
        assert "dateStartedTo" in exc.value.message

    def test_blank_text_is_no_filter(self):
        assert build_scan_filter(name="   ").name is None


class TestPredicate:
    def test_text_filters_are_case_insensitive_substrings(self, svc, make_scan):
        hit = make_scan(namespace="RedHat", extension="java", display_name="Language Support for Java")
        make_scan(namespace="ms-python", extension="python")

        rows, _ = svc.list_scans(ScanFilter(namespace="redh"))
        assert ids(rows) == [hit.id]
        rows, _ = svc.list_scans(ScanFilter(name="language support"))
        assert ids(rows) == [hit.id]

    def test_like_wildcards_are_literal(self, svc, make_scan):
        make_scan(extension="plain")
        rows, total = svc.list_scans(ScanFilter(name="%"))
        assert rows == [] and total == 0

    def test_date_bounds_are_inclusive(self, svc, make_scan):
        early = make_scan(started_at=BASE_TIME)
        late = make_scan(started_at=BASE_TIME + timedelta(days=2))

        rows, _ = svc.list_scans(ScanFilter(started_from=BASE_TIME + timedelta(days=2)))
        assert ids(rows) == [late.id]
        rows, _ = svc.list_scans(ScanFilter(started_to=BASE_TIME))
        assert ids(rows) == [early.id]

    def test_enforcement_narrows_named_scanners(self, svc, make_scan):
        # enforced finding from a different scanner must not satisfy the filter
        mixed = make_scan(threats=[threat(scanner="yara", enforced=False), threat(scanner="clamav", file_hash="h2")])
        strict = make_scan(threats=[threat(scanner="yara", file_hash="h3")])

        rows, _ = svc.list_scans(ScanFilter(scanner_names=frozenset({"yara"}), enforcement=Enforcement.ENFORCED))
        assert ids(rows) == [strict.id]
        rows, _ = svc.list_scans(ScanFilter(scanner_names=frozenset({"yara"}), enforcement=Enforcement.NOT_ENFORCED))
        assert ids(rows) == [mixed.id]

    def test_enforcement_alone_looks_at_any_finding(self, svc, make_scan):
        by_failure = make_scan(failures=[failure()])
        by_threat = make_scan(threats=[threat()])
        make_scan(status=ScanStatus.PASSED)

        rows, total = svc.list_scans(ScanFilter(enforcement=Enforcement.ENFORCED))
        assert sorted(ids(rows)) == sorted([by_failure.id, by_threat.id])
        assert total == 2

    def test_check_types_and_scanners_are_both_required(self, svc, make_scan):
        both = make_scan(failures=[failure(check_type="secrets")], threats=[threat(scanner="yara")])
        make_scan(failures=[failure(check_type="secrets")])

        f = ScanFilter(check_types=frozenset({"secrets"}), scanner_names=frozenset({"yara"}))
        rows, _ = svc.list_scans(f)
        assert ids(rows) == [both.id]

    def test_admin_decision_values_are_or_combined(self, app, svc, make_scan):
        allowed = make_scan()
        blocked = make_scan()
        pending = make_scan()
        make_scan(status=ScanStatus.PASSED)
        DecisionService().decide(allowed.id, Decision.ALLOWED, "admin1")
        DecisionService().decide(blocked.id, Decision.BLOCKED, "admin1")

        rows, _ = svc.list_scans(ScanFilter(admin_decisions=frozenset({AdminDecisionFilter.NEEDS_REVIEW})))
        assert ids(rows) == [pending.id]
        f = ScanFilter(admin_decisions=frozenset({AdminDecisionFilter.ALLOWED, AdminDecisionFilter.BLOCKED}))
        rows, _ = svc.list_scans(f)
        assert sorted(ids(rows)) == sorted([allowed.id, blocked.id])

    def test_total_matches_unpaginated_list(self, svc, make_scan):
        for _ in range(5):
            make_scan(threats=[threat(enforced=False)])
        make_scan(status=ScanStatus.PASSED)
        f = ScanFilter(statuses=frozenset({ScanStatus.QUARANTINED}), enforcement=Enforcement.NOT_ENFORCED)

        page, total = svc.list_scans(f, offset=1, size=2)
        everything, _ = svc.list_scans(f, size=None)
        assert len(page) == 2
        assert total == len(everything) == svc.count(f) == 5


class TestSorting:
    def test_default_puts_in_flight_first_then_latest_completion(self, svc, make_scan):
        old = make_scan(status=ScanStatus.PASSED, completed_at=BASE_TIME + timedelta(hours=1))
        new = make_scan(status=ScanStatus.PASSED, completed_at=BASE_TIME + timedelta(hours=3))
        running = make_scan(status=ScanStatus.SCANNING)

        rows, _ = svc.list_scans(ScanFilter())
        assert ids(rows) == [running.id, new.id, old.id]
        rows, _ = svc.list_scans(ScanFilter(), sort_order="asc")
        assert ids(rows) == [running.id, old.id, new.id]

    def test_display_name_sort(self, svc, make_scan):
        b = make_scan(extension="bravo")
        a = make_scan(extension="zulu", display_name="Alpha")
        rows, _ = svc.list_scans(ScanFilter(), sort_by="displayName", sort_order="asc")
        assert ids(rows) == [a.id, b.id]

    def test_unknown_sort_is_rejected(self, svc):
        with pytest.raises(Unprocessable) as exc:
            svc.list_scans(ScanFilter(), sort_by="severity")
        assert exc.value.message == "Unsupported sortBy value: severity"
        with pytest.raises(Unprocessable):
            svc.list_scans(ScanFilter(), sort_order="sideways")


class TestCounts:
    def test_counts_cover_every_status_and_decision(self, svc, make_scan):
        decided = make_scan()
        make_scan()
        make_scan(status=ScanStatus.REJECTED)
        make_scan(status=ScanStatus.ERRORED)
        make_scan(status=ScanStatus.STARTED)
        DecisionService().decide(decided.id, Decision.BLOCKED, "admin1")

        counts = svc.counts(ScanFilter())
        assert counts["QUARANTINED"] == 2
        assert counts["AUTO_REJECTED"] == 1
        assert counts["ERROR"] == 1
        assert counts["STARTED"] == 1
        assert counts["PASSED"] == 0
        assert counts["BLOCKED"] == 1
        assert counts["ALLOWED"] == 0
        assert counts["NEEDS_REVIEW"] == 1

    def test_needs_review_never_goes_negative(self, svc, make_scan):
        scans = [make_scan() for _ in range(4)]
        for scan in scans:
            DecisionService().decide(scan.id, Decision.BLOCKED, "admin1")
        # a later correction moves one decided scan out of quarantine
        moved = db.session.get(type(scans[0]), scans[0].id)
        moved.status = ScanStatus.PASSED
        db.session.commit()

        counts = svc.counts(ScanFilter())
        assert counts["QUARANTINED"] == 3
        assert counts["BLOCKED"] == 4
        assert counts["NEEDS_REVIEW"] == 0

    def test_counts_follow_the_filter(self, svc, make_scan):
        make_scan(publisher="Acme Corp")
        other = make_scan(publisher="Other Inc")
        DecisionService().decide(other.id, Decision.ALLOWED, "admin1")

        counts = svc.counts(ScanFilter(publisher="acme"))
        assert counts["QUARANTINED"] == 1
        assert counts["ALLOWED"] == 0
        assert counts["NEEDS_REVIEW"] == 1
        assert sum(counts[k] for k in ("STARTED", "VALIDATING", "SCANNING", "PASSED", "QUARANTINED",
                                       "AUTO_REJECTED", "ERROR")) == svc.count(ScanFilter(publisher="acme"))

    def test_filter_options_are_distinct_and_sorted(self, svc, make_scan):
        make_scan(failures=[failure(check_type="secrets"), failure(check_type="name-squatting")],
                  threats=[threat(scanner="yara"), threat(scanner="clamav", file_hash="h9")])
        make_scan(threats=[threat(scanner="yara", file_hash="h10")])
        assert svc.filter_options() == {
            "validation_types": ["name-squatting", "secrets"],
            "threat_scanner_names": ["clamav", "yara"],
        }
