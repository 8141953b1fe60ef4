import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.db.base import Base, TimestampMixin, UUIDMixin


class ApprovalModule(str, enum.Enum):
    LEAVE_REQUEST = "LEAVE_REQUEST"
    PURCHASE_REQUEST = "PURCHASE_REQUEST"
    ASSET_REQUEST = "ASSET_REQUEST"


class StepStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


class ApprovalPolicy(Base, UUIDMixin, TimestampMixin):
    """Admin-configured approval chain for one module and metric range."""

    __tablename__ = "approval_policies"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    module: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Amount range: purchase/asset requests only
    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    # Day range: leave requests only
    min_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    levels: Mapped[list["ApprovalLevel"]] = relationship(
        "ApprovalLevel",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="ApprovalLevel.level_order",
        lazy="selectin",
    )


class ApprovalLevel(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "approval_levels"
    __table_args__ = (UniqueConstraint("policy_id", "level_order", name="uq_approval_levels_policy_order"),)

    policy_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("approval_policies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    level_order: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..5
    approver_role: Mapped[str] = mapped_column(String(50), nullable=False)  # MANAGER, HR_MANAGER, ...

    policy: Mapped["ApprovalPolicy"] = relationship("ApprovalPolicy", back_populates="levels")


class ApprovalStep(Base, UUIDMixin, TimestampMixin):
    """One level of a running approval chain for a single request."""

    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "level_order", name="uq_approval_steps_entity_level"),
    )

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    policy_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("approval_policies.id"), nullable=False
    )
    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    level_order: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_role: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StepStatus.PENDING.value, index=True
    )  # PENDING, APPROVED, REJECTED, SKIPPED
    resolved_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decision_channel: Mapped[str | None] = mapped_column(String(20), nullable=True)  # web, whatsapp, link, bypass
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
