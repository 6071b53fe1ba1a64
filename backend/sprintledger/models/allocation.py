"""Phase allocation, weekly allocation and hour change request models."""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Integer, Numeric, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sprintledger.database import Base


class ApprovalStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    FORFEITED = "FORFEITED"
    DELETION_PENDING = "DELETION_PENDING"


# Hours held by these allocations go back to the consultant's project pool
RELEASED_STATUSES = frozenset({ApprovalStatus.EXPIRED, ApprovalStatus.FORFEITED})

# Statuses whose hours are not committed against the project budget
UNCOMMITTED_STATUSES = RELEASED_STATUSES | {ApprovalStatus.REJECTED}


class PlanningStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    MODIFIED = "MODIFIED"


class ChangeType(str, PyEnum):
    ADJUSTMENT = "ADJUSTMENT"
    SHIFT = "SHIFT"


class ChangeStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PhaseAllocation(Base):
    """A consultant's committed total hours on a phase."""

    __tablename__ = "phase_allocations"
    __table_args__ = (UniqueConstraint("phase_id", "consultant_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    phase_id: Mapped[int] = mapped_column(ForeignKey("phases.id", ondelete="CASCADE"), nullable=False)
    consultant_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    # Hours last approved, kept while a change to an APPROVED allocation awaits review
    previous_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    phase: Mapped["Phase"] = relationship("Phase", back_populates="allocations")
    weekly_allocations: Mapped[list["WeeklyAllocation"]] = relationship(
        "WeeklyAllocation",
        back_populates="phase_allocation",
        cascade="all, delete-orphan",
        order_by="WeeklyAllocation.week_start_date",
    )


class WeeklyAllocation(Base):
    """Part of a phase allocation distributed into one ISO calendar week."""

    __tablename__ = "weekly_allocations"
    __table_args__ = (UniqueConstraint("phase_allocation_id", "week_start_date"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    phase_allocation_id: Mapped[int] = mapped_column(
        ForeignKey("phase_allocations.id", ondelete="CASCADE"),
        nullable=False,
    )
    consultant_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    proposed_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    approved_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    planning_status: Mapped[PlanningStatus] = mapped_column(
        Enum(PlanningStatus),
        nullable=False,
        default=PlanningStatus.PENDING,
    )
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    modification_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    phase_allocation: Mapped["PhaseAllocation"] = relationship(
        "PhaseAllocation",
        back_populates="weekly_allocations",
    )

    @property
    def effective_hours(self) -> Decimal:
        """Approved hours when the approver set them, proposed hours otherwise."""
        return self.approved_hours if self.approved_hours is not None else self.proposed_hours


class HourChangeRequest(Base):
    """Request to resize (ADJUSTMENT) or transfer (SHIFT) committed phase hours."""

    __tablename__ = "hour_change_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    change_type: Mapped[ChangeType] = mapped_column(Enum(ChangeType), nullable=False)
    phase_allocation_id: Mapped[int] = mapped_column(
        ForeignKey("phase_allocations.id", ondelete="CASCADE"),
        nullable=False,
    )
    phase_id: Mapped[int] = mapped_column(ForeignKey("phases.id", ondelete="CASCADE"), nullable=False)
    requester_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    original_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    requested_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    shift_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    from_consultant_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    to_consultant_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ChangeStatus] = mapped_column(
        Enum(ChangeStatus),
        nullable=False,
        default=ChangeStatus.PENDING,
    )
    approver_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    phase_allocation: Mapped["PhaseAllocation"] = relationship("PhaseAllocation")
