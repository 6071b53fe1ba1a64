"""Role-based access control.

The growth team is the central approval authority. Product managers run
their projects' phases and rosters; consultants plan their own weeks.
"""
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    GROWTH_TEAM = "growth_team"
    PRODUCT_MANAGER = "product_manager"
    CONSULTANT = "consultant"


ROLE_NAMES = [r.value for r in Role]


def _has_any(roles: list[str], allowed: list[Role]) -> bool:
    names = {r.value for r in allowed}
    return any(r.lower() in names for r in roles)


def is_growth_team(roles: list[str]) -> bool:
    return _has_any(roles, [Role.ADMIN, Role.GROWTH_TEAM])


def can_manage_phases(roles: list[str]) -> bool:
    return _has_any(roles, [Role.ADMIN, Role.GROWTH_TEAM, Role.PRODUCT_MANAGER])


def can_approve(roles: list[str]) -> bool:
    return is_growth_team(roles)


def can_request_hour_change(roles: list[str]) -> bool:
    return _has_any(roles, [Role.ADMIN, Role.GROWTH_TEAM, Role.PRODUCT_MANAGER, Role.CONSULTANT])


def can_forfeit(roles: list[str]) -> bool:
    return _has_any(roles, [Role.ADMIN, Role.PRODUCT_MANAGER])


def can_plan_for(roles: list[str], user_id: int, consultant_id: int) -> bool:
    """Consultants plan their own weeks; managers may plan for anyone."""
    if user_id == consultant_id:
        return True
    return can_manage_phases(roles)
