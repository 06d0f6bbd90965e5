from datetime import datetime, timezone
import enum
from sqlalchemy import Index
from sqlalchemy.orm import relationship
from extensions import db

utcnow = lambda: datetime.now(timezone.utc)


class ScanStatus(enum.Enum):
    STARTED     = "STARTED"
    VALIDATING  = "VALIDATING"
    SCANNING    = "SCANNING"
    PASSED      = "PASSED"
    QUARANTINED = "QUARANTINED"
    REJECTED    = "REJECTED"
    ERRORED     = "ERRORED"

class CheckCategory(enum.Enum):
    VALIDATION = "VALIDATION"
    THREAT     = "THREAT"
    OTHER      = "OTHER"

class CheckOutcome(enum.Enum):
    PASSED     = "PASSED"
    QUARANTINE = "QUARANTINE"   # failed, needs a reviewer
    REJECT     = "REJECT"       # failed, auto-reject
    ERROR      = "ERROR"

class Decision(enum.Enum):
    ALLOWED = "ALLOWED"
    BLOCKED = "BLOCKED"


class ExtensionScan(db.Model):
    """
    One automated scan attempt for a published extension version.
    Identity columns are copied at scan time so the record keeps its
    provenance after the extension is renamed or removed.
    """
    __tablename__ = "extension_scans"

    id                     = db.Column(db.Integer, primary_key=True)
    namespace_name         = db.Column(db.String(255), nullable=False, index=True)
    extension_name         = db.Column(db.String(255), nullable=False, index=True)
    extension_version      = db.Column(db.String(100), nullable=False)
    target_platform        = db.Column(db.String(255), nullable=True)   # NULL = universal
    publisher              = db.Column(db.String(255), nullable=False, index=True)
    publisher_url          = db.Column(db.String(255), nullable=True)
    extension_display_name = db.Column(db.String(255), nullable=True)
    status                 = db.Column(
                                db.Enum(ScanStatus, name="scan_status_enum", native_enum=False, length=20),
                                nullable=False,
                                default=ScanStatus.STARTED,
                                index=True,
                             )
    started_at             = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    completed_at           = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    error_message          = db.Column(db.String(2048), nullable=True)

    check_results = relationship(
        "ScanCheckResult",
        back_populates="scan",
        order_by="ScanCheckResult.started_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    validation_failures = relationship(
        "ExtensionValidationFailure",
        back_populates="scan",
        order_by="ExtensionValidationFailure.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    threats = relationship(
        "ExtensionThreat",
        back_populates="scan",
        order_by="ExtensionThreat.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    admin_decision = relationship(
        "AdminScanDecision",
        back_populates="scan",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_extension_scans_identity", "namespace_name", "extension_name", "extension_version", "target_platform"),
    )

    @property
    def is_universal(self) -> bool:
        return not self.target_platform or self.target_platform == "universal"

    @property
    def extension_label(self) -> str:
        return f"{self.namespace_name}.{self.extension_name} v{self.extension_version}"

    def __repr__(self):
        return f"<ExtensionScan #{self.id} {self.extension_label} {self.status.value if self.status else None}>"


class ScanCheckResult(db.Model):
    """
    Append-only history of every check run against a scan.
    """
    __tablename__ = "scan_check_results"
    __table_args__ = (
        Index("ix_scan_check_results_scan_started", "scan_id", "started_at"),
    )

    id             = db.Column(db.Integer, primary_key=True)
    scan_id        = db.Column(db.Integer, db.ForeignKey("extension_scans.id", ondelete="CASCADE"), nullable=False, index=True)
    check_type     = db.Column(db.String(100), nullable=False, index=True)
    category       = db.Column(db.Enum(CheckCategory, name="check_category_enum", native_enum=False, length=20), nullable=False)
    result         = db.Column(db.Enum(CheckOutcome, name="check_outcome_enum", native_enum=False, length=20), nullable=False)
    started_at     = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at   = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_ms    = db.Column(db.BigInteger, nullable=True)
    files_scanned  = db.Column(db.Integer, nullable=True)
    findings_count = db.Column(db.Integer, nullable=True)
    summary        = db.Column(db.String(512), nullable=True)
    error_message  = db.Column(db.String(2048), nullable=True)
    required       = db.Column(db.Boolean, nullable=False, default=True)

    scan = relationship("ExtensionScan", back_populates="check_results")


class ExtensionValidationFailure(db.Model):
    __tablename__ = "extension_validation_failures"

    id          = db.Column(db.Integer, primary_key=True)
    scan_id     = db.Column(db.Integer, db.ForeignKey("extension_scans.id", ondelete="CASCADE"), nullable=False, index=True)
    check_type  = db.Column(db.String(100), nullable=False, index=True)
    rule_name   = db.Column(db.String(255), nullable=False)
    reason      = db.Column(db.String(1024), nullable=False)
    enforced    = db.Column(db.Boolean, nullable=False, default=True)
    detected_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    scan = relationship("ExtensionScan", back_populates="validation_failures")


class ExtensionThreat(db.Model):
    """
    A threat reported by a scanner against one file of the package.
    `file_hash` joins to FileDecision.
    """
    __tablename__ = "extension_threats"

    id             = db.Column(db.Integer, primary_key=True)
    scan_id        = db.Column(db.Integer, db.ForeignKey("extension_scans.id", ondelete="CASCADE"), nullable=False, index=True)
    scanner_name   = db.Column(db.String(100), nullable=False, index=True)
    rule_name      = db.Column(db.String(255), nullable=False)
    reason         = db.Column(db.String(2048), nullable=True)
    severity       = db.Column(db.String(50), nullable=True)
    file_name      = db.Column(db.String(1024), nullable=False)
    file_hash      = db.Column(db.String(128), nullable=True, index=True)
    file_extension = db.Column(db.String(50), nullable=True)
    enforced       = db.Column(db.Boolean, nullable=False, default=True)
    detected_at    = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    scan = relationship("ExtensionScan", back_populates="threats")


class AdminScanDecision(db.Model):
    """
    Reviewer verdict on a quarantined scan. One per scan, never updated.
    """
    __tablename__ = "admin_scan_decisions"

    id         = db.Column(db.Integer, primary_key=True)
    scan_id    = db.Column(db.Integer, db.ForeignKey("extension_scans.id", ondelete="CASCADE"), nullable=False, unique=True)
    decision   = db.Column(db.Enum(Decision, name="decision_enum", native_enum=False, length=20), nullable=False, index=True)
    decided_by = db.Column(db.String(255), nullable=False)
    decided_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    scan = relationship("ExtensionScan", back_populates="admin_decision")

    def __repr__(self):
        return f"<AdminScanDecision scan={self.scan_id} {self.decision.value if self.decision else None}>"


class FileDecision(db.Model):
    """
    Allow/block verdict keyed by file content hash, reusable across scans.
    Provenance columns are for display only; matching is by hash.
    """
    __tablename__ = "file_decisions"

    id             = db.Column(db.Integer, primary_key=True)
    file_hash      = db.Column(db.String(128), nullable=False, unique=True)
    file_name      = db.Column(db.String(1024), nullable=True)
    file_type      = db.Column(db.String(50), nullable=True)
    decision       = db.Column(db.Enum(Decision, name="decision_enum", native_enum=False, length=20), nullable=False, index=True)
    decided_by     = db.Column(db.String(255), nullable=False)
    decided_at     = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    display_name   = db.Column(db.String(255), nullable=True)
    namespace_name = db.Column(db.String(255), nullable=True)
    extension_name = db.Column(db.String(255), nullable=True)
    publisher      = db.Column(db.String(255), nullable=True)
    version        = db.Column(db.String(100), nullable=True)
    scan_id        = db.Column(db.Integer, db.ForeignKey("extension_scans.id", ondelete="SET NULL"), nullable=True, index=True)

    def __repr__(self):
        return f"<FileDecision {self.file_hash} {self.decision.value if self.decision else None}>"
