"""Shared fixtures: an app on in-memory SQLite, tokens, and a scan factory."""
import itertools
from datetime import datetime, timedelta, timezone

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from extensions import db
from scanning import records
from scanning.activation import ExtensionActivator
from scanning.models import ScanStatus

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeActivator(ExtensionActivator):
    def __init__(self):
        self.calls = []
        self.result = True
        self.error = None

    def activate(self, namespace, extension, version, target_platform):
        self.calls.append((namespace, extension, version, target_platform))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def activator():
    return FakeActivator()


@pytest.fixture
def app(activator):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
            "RATELIMIT_ENABLED": False,
        },
        activator=activator,
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _headers(identity, scopes):
    token = create_access_token(identity=identity, additional_claims={"scopes": scopes})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reader_headers(app):
    return _headers("viewer1", ["scans.read"])


@pytest.fixture
def reviewer_headers(app):
    return _headers("admin1", ["scans.read", "scans.review"])


_IN_FLIGHT_PATH = [ScanStatus.STARTED, ScanStatus.VALIDATING, ScanStatus.SCANNING]
_versions = itertools.count(1)


@pytest.fixture
def make_scan(app):
    """
    Builds a committed scan that walked the legal lifecycle up to `status`.
    threats / failures are lists of kwargs for records.add_threat /
    records.add_validation_failure.
    """
    def factory(
        status=ScanStatus.QUARANTINED,
        *,
        namespace="acme",
        extension="widget",
        version=None,
        publisher="Acme Corp",
        display_name=None,
        target_platform=None,
        started_at=None,
        completed_at=None,
        threats=(),
        failures=(),
    ):
        started_at = started_at or BASE_TIME
        scan = records.start_scan(
            namespace, extension, version or f"1.0.{next(_versions)}", publisher,
            target_platform=target_platform,
            display_name=display_name,
            started_at=started_at,
        )
        for step in _IN_FLIGHT_PATH[1:]:
            if scan.status == status:
                break
            records.advance(scan, step)
        for kw in failures:
            records.add_validation_failure(scan, **kw)
        for kw in threats:
            records.add_threat(scan, **kw)
        if status not in _IN_FLIGHT_PATH:
            records.advance(
                scan, status,
                completed_at=completed_at or started_at + timedelta(minutes=5),
                error_message="scanner crashed" if status == ScanStatus.ERRORED else None,
            )
        db.session.commit()
        return scan

    return factory


def threat(scanner="yara", rule="suspicious-eval", file_name="dist/main.js", file_hash="abc123", enforced=True, **kw):
    return dict(scanner_name=scanner, rule_name=rule, file_name=file_name, file_hash=file_hash, enforced=enforced, **kw)


def failure(check_type="name-squatting", rule="similar-name", reason="too close to an existing extension", enforced=True):
    return dict(check_type=check_type, rule_name=rule, reason=reason, enforced=enforced)
