"""
Activation onboarding models: whitelist entries, activation codes and the
append-only audit log.
"""
from sqlalchemy import Column, String, Boolean, Integer, Text, ForeignKey, Index, JSON, Uuid, text
from sqlalchemy.orm import relationship

from common.types import ActivationCodeStatus, IdentifierType, UserRole
from models.database.base import Base, BaseModel, AuditMixin, UTCDateTime
from utils.datetime_utils import DateTimeManager


class WhitelistEntry(BaseModel, AuditMixin):
    """Pre-authorized person allowed to activate an account"""

    __tablename__ = "activation_whitelist"

    identifier = Column(String(255), nullable=False, unique=True, index=True, comment="Normalized identifier")
    identifier_type = Column(
        String(20),
        nullable=False,
        default=IdentifierType.EMAIL.value,
        comment="email | phone | national_id"
    )
    full_name = Column(String(255), nullable=False)
    assigned_role = Column(String(50), nullable=False, default=UserRole.FIELD_AGENT.value, index=True)
    assigned_supervisor_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    phone = Column(String(50), nullable=True)
    is_activated = Column(Boolean, nullable=False, default=False, index=True)
    activated_at = Column(UTCDateTime(), nullable=True)
    activated_user_id = Column(Uuid(as_uuid=True), nullable=True)
    notes = Column(Text, nullable=True)

    supervisor = relationship("User", lazy="selectin")
    codes = relationship(
        "ActivationCode",
        back_populates="whitelist_entry",
        order_by="ActivationCode.created_at",
        lazy="noload",
    )

    @property
    def role_enum(self) -> UserRole:
        return UserRole.parse(self.assigned_role)


class ActivationCode(BaseModel, AuditMixin):
    """
    Single-use onboarding code. Only the salted hash is stored;
    the plaintext leaves the system exactly once at creation.
    """

    __tablename__ = "activation_codes"

    whitelist_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("activation_whitelist.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    code_hash = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=ActivationCodeStatus.ACTIVE.value, index=True)
    expires_at = Column(UTCDateTime(), nullable=True, comment="NULL means the code never expires")
    used_at = Column(UTCDateTime(), nullable=True)
    used_by_ip = Column(String(64), nullable=True)
    used_user_agent = Column(String(500), nullable=True)
    revoked_at = Column(UTCDateTime(), nullable=True)
    revoked_by = Column(Uuid(as_uuid=True), nullable=True)
    revoke_reason = Column(Text, nullable=True)
    failed_attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=5)
    last_attempt_at = Column(UTCDateTime(), nullable=True)

    whitelist_entry = relationship("WhitelistEntry", back_populates="codes", lazy="selectin")

    __table_args__ = (
        # At most one active code per whitelist entry
        Index(
            "uq_activation_code_active_entry",
            "whitelist_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    @property
    def status_enum(self) -> ActivationCodeStatus:
        return ActivationCodeStatus(self.status)

    def effective_status(self, now=None) -> ActivationCodeStatus:
        """Stored status, reporting an active code past its expiry as expired"""
        status = self.status_enum
        if status is ActivationCodeStatus.ACTIVE and DateTimeManager.is_past(self.expires_at, now):
            return ActivationCodeStatus.EXPIRED
        return status

    @property
    def remaining_attempts(self) -> int:
        return max(self.max_attempts - self.failed_attempts, 0)


class ActivationAuditLog(Base):
    """Append-only audit trail for activation codes"""

    __tablename__ = "activation_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    activation_code_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("activation_codes.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    whitelist_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    event_type = Column(String(30), nullable=False, index=True)
    success = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime(), nullable=False, default=DateTimeManager.utc_now, index=True)
    ip_address = Column(String(64), nullable=True, index=True)
    user_agent = Column(String(500), nullable=True)
    identifier_attempted = Column(String(255), nullable=True, comment="Masked identifier")
    failure_reason = Column(Text, nullable=True)
    actor_user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    details = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_activation_audit_code_time", "activation_code_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ActivationAuditLog(id={self.id}, event={self.event_type})>"
