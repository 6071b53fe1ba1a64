"""Project, sprint and phase models."""
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sprintledger.database import Base


class Project(Base):
    """Project entity with its hour budget."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    budgeted_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    product_manager_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    sprints: Mapped[list["Sprint"]] = relationship(
        "Sprint",
        back_populates="project",
        order_by="Sprint.sprint_number",
        cascade="all, delete-orphan",
    )
    phases: Mapped[list["Phase"]] = relationship(
        "Phase",
        back_populates="project",
        cascade="all, delete-orphan",
    )
    consultants: Mapped[list["ProjectConsultant"]] = relationship(
        "ProjectConsultant",
        back_populates="project",
        cascade="all, delete-orphan",
    )


class ProjectConsultant(Base):
    """A consultant on a project's team with their project-level hour allocation."""

    __tablename__ = "project_consultants"
    __table_args__ = (UniqueConstraint("project_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    allocated_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)

    project: Mapped["Project"] = relationship("Project", back_populates="consultants")


class Sprint(Base):
    """Fixed-length unit of project time. Sprint 0 is reserved for kickoff."""

    __tablename__ = "sprints"
    __table_args__ = (UniqueConstraint("project_id", "sprint_number"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    sprint_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    phase_id: Mapped[int | None] = mapped_column(ForeignKey("phases.id", ondelete="SET NULL"), nullable=True)

    project: Mapped["Project"] = relationship("Project", back_populates="sprints")
    phase: Mapped["Phase | None"] = relationship("Phase", back_populates="sprints")


class Phase(Base):
    """Named span of a project; dates are derived from its sprints."""

    __tablename__ = "phases"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    project: Mapped["Project"] = relationship("Project", back_populates="phases")
    sprints: Mapped[list["Sprint"]] = relationship(
        "Sprint",
        back_populates="phase",
        order_by="Sprint.sprint_number",
    )
    allocations: Mapped[list["PhaseAllocation"]] = relationship(
        "PhaseAllocation",
        back_populates="phase",
        cascade="all, delete-orphan",
    )
