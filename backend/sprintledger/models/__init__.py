"""SQLAlchemy models."""
from sprintledger.models.allocation import (
    ApprovalStatus,
    ChangeStatus,
    ChangeType,
    HourChangeRequest,
    PhaseAllocation,
    PlanningStatus,
    WeeklyAllocation,
)
from sprintledger.models.audit import AuditLog
from sprintledger.models.project import Phase, Project, ProjectConsultant, Sprint
from sprintledger.models.user import Role, User, UserRole

__all__ = [
    "ApprovalStatus",
    "AuditLog",
    "ChangeStatus",
    "ChangeType",
    "HourChangeRequest",
    "Phase",
    "PhaseAllocation",
    "PlanningStatus",
    "Project",
    "ProjectConsultant",
    "Role",
    "Sprint",
    "User",
    "UserRole",
    "WeeklyAllocation",
]
