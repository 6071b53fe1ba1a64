"""Tests for the phase allocation lifecycle against a database."""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import _seed_allocation, _seed_phase, _seed_project, _seed_user, _seed_week
from sprintledger.errors import DomainError, InvalidTransitionError, NotFoundError, RuleViolationError
from sprintledger.models.allocation import ApprovalStatus, PhaseAllocation, PlanningStatus, WeeklyAllocation
from sprintledger.models.audit import AuditLog
from sprintledger.services import allocation_service, capacity_service


async def _setup(db, team_hours=Decimal("100")):
    pm = await _seed_user(db, "pm@example.com", "product_manager")
    growth = await _seed_user(db, "growth@example.com", "growth_team")
    consultant = await _seed_user(db, "ana@example.com", "consultant")
    project, sprints = await _seed_project(db, team={consultant.id: team_hours})
    phase = await _seed_phase(db, project, sprints[:2])
    return pm, growth, consultant, project, sprints, phase


def test_set_phase_allocation_creates_pending(run_in_db):
    async def scenario(db):
        pm, _, consultant, _, _, phase = await _setup(db)
        allocation, warning = await allocation_service.set_phase_allocation(
            db, phase_id=phase.id, consultant_id=consultant.id, total_hours="40", user_id=pm.id
        )
        assert allocation.approval_status == ApprovalStatus.PENDING
        assert allocation.total_hours == Decimal("40")
        assert warning is None
        actions = (await db.execute(select(AuditLog.action))).scalars().all()
        assert "create" in actions

    run_in_db(scenario)


def test_over_allocation_against_other_phases(run_in_db):
    async def scenario(db):
        pm, _, consultant, project, sprints, phase = await _setup(db)
        other = await _seed_phase(db, project, sprints[2:], name="Launch")
        await _seed_allocation(db, other, consultant.id, 40)
        with pytest.raises(RuleViolationError) as exc:
            await allocation_service.set_phase_allocation(
                db, phase_id=phase.id, consultant_id=consultant.id, total_hours=70, user_id=pm.id
            )
        assert exc.value.message.startswith("Over-allocated by 10h")

    run_in_db(scenario)


def test_rejected_and_released_allocations_free_the_pool(run_in_db):
    async def scenario(db):
        pm, _, consultant, project, sprints, phase = await _setup(db)
        other = await _seed_phase(db, project, sprints[2:], name="Launch")
        await _seed_allocation(db, other, consultant.id, 90, status=ApprovalStatus.REJECTED)
        allocation, _ = await allocation_service.set_phase_allocation(
            db, phase_id=phase.id, consultant_id=consultant.id, total_hours=70, user_id=pm.id
        )
        assert allocation.total_hours == Decimal("70")

    run_in_db(scenario)


def test_consultant_must_be_on_team(run_in_db):
    async def scenario(db):
        pm, _, _, _, _, phase = await _setup(db)
        outsider = await _seed_user(db, "bo@example.com", "consultant")
        with pytest.raises(DomainError) as exc:
            await allocation_service.set_phase_allocation(
                db, phase_id=phase.id, consultant_id=outsider.id, total_hours=10, user_id=pm.id
            )
        assert exc.value.message == "Consultant is not on this project's team"

    run_in_db(scenario)


def test_reduce_below_planned_hours(run_in_db):
    async def scenario(db):
        pm, _, consultant, _, _, phase = await _setup(db)
        allocation = await _seed_allocation(db, phase, consultant.id, 30)
        await _seed_week(db, allocation, date(2030, 1, 7), 10)

        with pytest.raises(RuleViolationError) as exc:
            await allocation_service.set_phase_allocation(
                db, phase_id=phase.id, consultant_id=consultant.id, total_hours=5, user_id=pm.id
            )
        assert "Maximum reduction allowed: -20h" in exc.value.message

        updated, _ = await allocation_service.set_phase_allocation(
            db, phase_id=phase.id, consultant_id=consultant.id, total_hours=15, user_id=pm.id
        )
        assert updated.total_hours == Decimal("15")
        # Changing an approved allocation sends it back for approval
        assert updated.approval_status == ApprovalStatus.PENDING

    run_in_db(scenario)


def test_capacity_shortfall_is_a_warning(run_in_db):
    async def scenario(db):
        pm, _, consultant, _, _, phase = await _setup(db, team_hours=Decimal("200"))
        elsewhere, elsewhere_sprints = await _seed_project(db, title="Borealis", team={consultant.id: Decimal("200")})
        busy_phase = await _seed_phase(db, elsewhere, elsewhere_sprints[:2])
        busy = await _seed_allocation(db, busy_phase, consultant.id, 160)
        for week in (date(2030, 1, 7), date(2030, 1, 14), date(2030, 1, 21), date(2030, 1, 28)):
            await _seed_week(db, busy, week, 40)

        allocation, warning = await allocation_service.set_phase_allocation(
            db, phase_id=phase.id, consultant_id=consultant.id, total_hours=20, user_id=pm.id
        )
        assert allocation.approval_status == ApprovalStatus.PENDING
        assert "exceeds the consultant's 0h of free capacity" in warning

    run_in_db(scenario)


def test_approve_with_budget_advisory(run_in_db):
    async def scenario(db):
        _, growth, consultant, _, _, phase = await _setup(db)
        pending = await _seed_allocation(db, phase, consultant.id, 40, status=ApprovalStatus.PENDING)
        allocation, warning = await allocation_service.approve_phase_allocation(
            db, allocation_id=pending.id, approver_id=growth.id, approved_hours=Decimal("36")
        )
        assert allocation.approval_status == ApprovalStatus.APPROVED
        assert allocation.total_hours == Decimal("36")
        assert allocation.approved_by == growth.id
        assert warning == "Low budget utilization: 4% for Atlas"

    run_in_db(scenario)


def test_approve_rejects_modified_hours_over_pool(run_in_db):
    async def scenario(db):
        _, growth, consultant, _, _, phase = await _setup(db)
        pending = await _seed_allocation(db, phase, consultant.id, 40, status=ApprovalStatus.PENDING)
        with pytest.raises(RuleViolationError):
            await allocation_service.approve_phase_allocation(
                db, allocation_id=pending.id, approver_id=growth.id, approved_hours=Decimal("120")
            )
        assert pending.approval_status == ApprovalStatus.PENDING

    run_in_db(scenario)


def test_reject_allocation(run_in_db):
    async def scenario(db):
        _, growth, consultant, _, _, phase = await _setup(db)
        pending = await _seed_allocation(db, phase, consultant.id, 40, status=ApprovalStatus.PENDING)
        allocation = await allocation_service.reject_phase_allocation(
            db, allocation_id=pending.id, approver_id=growth.id, reason="Scope not confirmed"
        )
        assert allocation.approval_status == ApprovalStatus.REJECTED
        assert allocation.rejection_reason == "Scope not confirmed"
        with pytest.raises(InvalidTransitionError):
            await allocation_service.approve_phase_allocation(db, allocation_id=pending.id, approver_id=growth.id)

    run_in_db(scenario)


def test_rejected_change_keeps_planned_weeks_committed(run_in_db):
    async def scenario(db):
        pm, growth, consultant, _, _, phase = await _setup(db)
        allocation = await _seed_allocation(db, phase, consultant.id, 40)
        await _seed_week(db, allocation, date(2030, 1, 7), 30)

        modified, _ = await allocation_service.set_phase_allocation(
            db, phase_id=phase.id, consultant_id=consultant.id, total_hours="50", user_id=pm.id
        )
        assert modified.approval_status == ApprovalStatus.PENDING
        assert modified.previous_hours == Decimal("40")

        rejected = await allocation_service.reject_phase_allocation(
            db, allocation_id=allocation.id, approver_id=growth.id, reason="No more budget this phase"
        )
        assert rejected.approval_status == ApprovalStatus.APPROVED
        assert rejected.total_hours == Decimal("40")
        assert rejected.previous_hours is None

        capacity = await capacity_service.consultant_availability(
            db, start=date(2030, 1, 7), end=date(2030, 1, 13), consultant_ids=[consultant.id]
        )
        assert capacity[0].total_allocated_hours == Decimal("30")

        parked = await allocation_service.remove_consultant_from_phase(
            db, phase_id=phase.id, consultant_id=consultant.id, user_id=pm.id
        )
        assert parked.approval_status == ApprovalStatus.DELETION_PENDING
        await allocation_service.approve_deletion(db, allocation_id=parked.id, approver_id=growth.id)
        assert (await db.execute(select(func.count(PhaseAllocation.id)))).scalar_one() == 0

    run_in_db(scenario)


def test_remove_without_planned_hours_deletes(run_in_db):
    async def scenario(db):
        pm, _, consultant, _, _, phase = await _setup(db)
        await _seed_allocation(db, phase, consultant.id, 40)
        removed = await allocation_service.remove_consultant_from_phase(
            db, phase_id=phase.id, consultant_id=consultant.id, user_id=pm.id
        )
        assert removed is None
        count = (await db.execute(select(func.count(PhaseAllocation.id)))).scalar_one()
        assert count == 0

    run_in_db(scenario)


def test_remove_with_planned_hours_waits_for_approval(run_in_db):
    async def scenario(db):
        pm, growth, consultant, _, _, phase = await _setup(db)
        allocation = await _seed_allocation(db, phase, consultant.id, 40)
        await _seed_week(db, allocation, date(2030, 1, 7), 8)

        parked = await allocation_service.remove_consultant_from_phase(
            db, phase_id=phase.id, consultant_id=consultant.id, user_id=pm.id
        )
        assert parked.approval_status == ApprovalStatus.DELETION_PENDING

        kept = await allocation_service.reject_deletion(db, allocation_id=parked.id, approver_id=growth.id)
        assert kept.approval_status == ApprovalStatus.APPROVED

        await allocation_service.remove_consultant_from_phase(
            db, phase_id=phase.id, consultant_id=consultant.id, user_id=pm.id
        )
        await allocation_service.approve_deletion(db, allocation_id=parked.id, approver_id=growth.id)
        assert (await db.execute(select(func.count(PhaseAllocation.id)))).scalar_one() == 0
        assert (await db.execute(select(func.count(WeeklyAllocation.id)))).scalar_one() == 0

    run_in_db(scenario)


def test_remove_unknown_consultant(run_in_db):
    async def scenario(db):
        pm, _, consultant, _, _, phase = await _setup(db)
        with pytest.raises(NotFoundError):
            await allocation_service.remove_consultant_from_phase(
                db, phase_id=phase.id, consultant_id=consultant.id, user_id=pm.id
            )

    run_in_db(scenario)


def test_expiry_sweep_and_forfeit(run_in_db):
    async def scenario(db):
        pm, _, consultant, project, sprints, phase = await _setup(db)
        colleague = await _seed_user(db, "cy@example.com", "consultant")
        partly = await _seed_allocation(db, phase, consultant.id, 40)
        await _seed_week(db, partly, date(2030, 1, 7), 20)
        await _seed_week(db, partly, date(2030, 1, 14), 10, status=PlanningStatus.PENDING)
        fully = await _seed_allocation(db, phase, colleague.id, 10)
        await _seed_week(db, fully, date(2030, 1, 7), 10)

        # Phase has not ended yet
        assert await allocation_service.detect_expired_allocations(db, today=date(2030, 1, 20)) == []

        expired = await allocation_service.detect_expired_allocations(db, today=date(2030, 3, 1))
        assert [a.id for a in expired] == [partly.id]
        assert partly.approval_status == ApprovalStatus.EXPIRED
        assert fully.approval_status == ApprovalStatus.APPROVED

        # Running the sweep again finds nothing new
        assert await allocation_service.detect_expired_allocations(db, today=date(2030, 3, 1)) == []

        allocation, forfeited = await allocation_service.forfeit_expired_hours(
            db, allocation_id=partly.id, user_id=pm.id
        )
        assert forfeited == Decimal("20")
        assert allocation.total_hours == Decimal("20")
        assert allocation.approval_status == ApprovalStatus.APPROVED

        with pytest.raises(DomainError) as exc:
            await allocation_service.forfeit_expired_hours(db, allocation_id=partly.id, user_id=pm.id)
        assert exc.value.message == "These hours have already been handled"

    run_in_db(scenario)
