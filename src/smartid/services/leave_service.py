"""Leave application service - submission, decisions and history."""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from smartid.errors import AuthError, NotFoundError, ValidationError
from smartid.models import (
    LeaveApplication,
    LeaveApprovalWorkflow,
    LeaveType,
    User,
)
from smartid.services.quota_service import QuotaService
from smartid.services.state_machine import (
    InvalidTransitionError,
    LeaveAction,
    LeaveStateMachine,
    LeaveStatus,
)
from smartid.services.user_lookup import parse_uuid, resolve_user
from smartid.services.working_days import load_working_day_policy

logger = logging.getLogger(__name__)

AUTO_APPROVAL_COMMENT = "Auto-approved: leave type does not require approval"
LIKE_SPECIALS = re.compile(r"[\\%_]")


@dataclass(frozen=True)
class SubmittedLeave:
    """Result of a leave submission."""

    application_id: UUID
    application_number: str
    status: str
    total_days: int


@dataclass(frozen=True)
class LeaveDecision:
    """Result of an approve/reject decision."""

    application_id: UUID
    status: str
    approval_level: int
    final: bool
    working_days: int | None = None


def approved_leave_on(target_date: date) -> ColumnElement[bool]:
    """Approved applications whose range includes ``target_date``."""
    return and_(
        LeaveApplication.status == LeaveStatus.APPROVED.value,
        LeaveApplication.start_date <= target_date,
        LeaveApplication.end_date >= target_date,
    )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveService:
    """Service for the leave application lifecycle.

    Operations:
    - submit: validate and file a pending application with its first workflow row
    - decide: approve or reject at the application's current approval level
    - history: a user's applications, newest first
    - list_applications: institution-wide view for approvers

    Every write goes through the caller's session, so the status change,
    the quota debit and the workflow update commit or roll back together.
    """

    def __init__(
        self,
        session: AsyncSession,
        quota_service: QuotaService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.quota_service = quota_service or QuotaService(session)
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_application(self, application_id: UUID) -> LeaveApplication | None:
        result = await self.session.execute(
            select(LeaveApplication)
            .where(LeaveApplication.id == application_id)
            .options(selectinload(LeaveApplication.leave_type))
        )
        return result.scalar_one_or_none()

    async def resolve_leave_type(self, institution_id: UUID, ref: str) -> LeaveType:
        """Find an active leave type by id, exact name or code, else a unique partial name."""
        base = select(LeaveType).where(
            LeaveType.institution_id == institution_id,
            LeaveType.is_active.is_(True),
        )
        term = ref.strip()
        try:
            exact = base.where(LeaveType.id == UUID(term))
        except ValueError:
            exact = base.where(
                or_(
                    func.lower(LeaveType.name) == term.lower(),
                    func.upper(LeaveType.code) == term.upper(),
                )
            )
        else:
            term = ""

        result = await self.session.execute(
            exact.order_by(LeaveType.display_order, LeaveType.name).limit(1)
        )
        leave_type = result.scalar_one_or_none()
        if leave_type is not None:
            return leave_type

        if term:
            pattern = "%" + LIKE_SPECIALS.sub(r"\\\g<0>", term) + "%"
            result = await self.session.execute(
                base.where(LeaveType.name.ilike(pattern, escape="\\"))
                .order_by(LeaveType.display_order, LeaveType.name)
                .limit(2)
            )
            matches = list(result.scalars().all())
            if len(matches) == 1:
                return matches[0]
            if matches:
                raise ValidationError(
                    f"Leave type '{ref}' is ambiguous, use the full name or code"
                )
        raise ValidationError(f"Leave type '{ref}' not found or inactive")

    async def find_overlap(
        self,
        user_id: UUID,
        start_date: date,
        end_date: date,
    ) -> LeaveApplication | None:
        """First pending/approved application of the user overlapping the range."""
        result = await self.session.execute(
            select(LeaveApplication)
            .where(
                LeaveApplication.user_id == user_id,
                LeaveApplication.status.in_([LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value]),
                LeaveApplication.start_date <= end_date,
                LeaveApplication.end_date >= start_date,
            )
            .order_by(LeaveApplication.start_date)
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        user_ref: str | UUID,
        leave_type_ref: str,
        start_date: date,
        end_date: date,
        reason: str,
        supporting_documents: list[str] | None = None,
        applied_date: date | None = None,
    ) -> SubmittedLeave:
        """File a new leave application in ``pending`` status."""
        if not reason or not reason.strip():
            raise ValidationError("Missing required field: reason")
        if end_date < start_date:
            raise ValidationError("endDate must not be before startDate")

        user = await resolve_user(self.session, user_id=user_ref)
        leave_type = await self.resolve_leave_type(user.institution_id, leave_type_ref)

        conflict = await self.find_overlap(user.id, start_date, end_date)
        if conflict is not None:
            raise ValidationError(
                f"Leave request conflicts with existing {conflict.status} leave "
                f"from {conflict.start_date} to {conflict.end_date}"
            )

        policy = await load_working_day_policy(
            self.session, user.institution_id, user.id, start_date, end_date
        )
        total_days = policy.count_working_days(start_date, end_date)

        now = self.clock()
        application = LeaveApplication(
            institution_id=user.institution_id,
            user_id=user.id,
            leave_type_id=leave_type.id,
            application_number=self._application_number(now),
            start_date=start_date,
            end_date=end_date,
            total_days=total_days,
            reason=reason.strip(),
            status=LeaveStatus.PENDING.value,
            approval_level=1,
            supporting_documents_urls=supporting_documents or None,
            applied_date=applied_date or now.date(),
        )
        self.session.add(application)
        await self.session.flush()

        self.session.add(
            LeaveApprovalWorkflow(
                leave_application_id=application.id,
                approval_level=1,
                status=LeaveStatus.PENDING.value,
            )
        )
        await self.session.flush()
        logger.info(
            "Leave application %s filed by %s: %s %s..%s (%s working day(s))",
            application.application_number,
            user.employee_id,
            leave_type.name,
            start_date,
            end_date,
            total_days,
        )

        status = application.status
        if not leave_type.requires_approval:
            decision = await self._apply_decision(
                application,
                leave_type,
                LeaveAction.APPROVE,
                approver=None,
                comments=AUTO_APPROVAL_COMMENT,
                force_final=True,
            )
            status = decision.status
            total_days = decision.working_days or 0

        return SubmittedLeave(
            application_id=application.id,
            application_number=application.application_number,
            status=status,
            total_days=total_days,
        )

    @staticmethod
    def _application_number(now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        return f"LA{now.year}-{millis}-{uuid.uuid4().hex[:4].upper()}"

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def decide(
        self,
        application_id: str | UUID,
        action: str,
        approver_id: str | UUID,
        comments: str | None = None,
    ) -> LeaveDecision:
        """Approve or reject an application at its current approval level.

        Raises:
            ValidationError: unknown action or malformed ids
            NotFoundError: no such application
            InvalidTransitionError: application is no longer pending
            AuthError: approver is missing, foreign, the applicant, or not an approver
        """
        LeaveStateMachine.target_for(action)
        application_id = parse_uuid(application_id, "applicationId")
        approver_id = parse_uuid(approver_id, "approverId")

        application = await self.get_application(application_id)
        if application is None:
            raise NotFoundError("Leave application not found")

        LeaveStateMachine.validate_decision(application.status, action)

        approver = await self._load_approver(approver_id)
        self._authorize_approver(application, approver)

        return await self._apply_decision(
            application,
            application.leave_type,
            LeaveAction(action),
            approver=approver,
            comments=comments,
        )

    async def _load_approver(self, approver_id: UUID) -> User | None:
        result = await self.session.execute(
            select(User)
            .where(
                or_(User.id == approver_id, User.auth_user_id == approver_id),
                User.status == "active",
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _authorize_approver(application: LeaveApplication, approver: User | None) -> None:
        if approver is None:
            raise AuthError("Approver not found or inactive", forbidden=True)
        if approver.institution_id != application.institution_id:
            raise AuthError("Approver does not belong to the applicant's institution", forbidden=True)
        if approver.id == application.user_id:
            raise AuthError("Applicants cannot decide their own leave", forbidden=True)
        if not approver.can_approve:
            raise AuthError("User is not allowed to approve leave", forbidden=True)

    async def _apply_decision(
        self,
        application: LeaveApplication,
        leave_type: LeaveType,
        action: LeaveAction,
        approver: User | None,
        comments: str | None,
        force_final: bool = False,
    ) -> LeaveDecision:
        now = self.clock()
        level = application.approval_level

        if action == LeaveAction.APPROVE and level < leave_type.approval_levels and not force_final:
            await self._guarded_update(application, level, approval_level=level + 1)
            await self._record_workflow(application.id, level, LeaveStatus.APPROVED.value, approver, comments, now)
            self.session.add(
                LeaveApprovalWorkflow(
                    leave_application_id=application.id,
                    approval_level=level + 1,
                    status=LeaveStatus.PENDING.value,
                )
            )
            await self.session.flush()
            logger.info(
                "Leave application %s approved at level %s of %s, awaiting level %s",
                application.application_number,
                level,
                leave_type.approval_levels,
                level + 1,
            )
            return LeaveDecision(
                application_id=application.id,
                status=application.status,
                approval_level=level + 1,
                final=False,
            )

        to_status = LeaveStateMachine.validate_decision(application.status, action)

        policy = await load_working_day_policy(
            self.session,
            application.institution_id,
            application.user_id,
            application.start_date,
            application.end_date,
        )
        working_days = policy.count_working_days(application.start_date, application.end_date)

        if to_status == LeaveStatus.APPROVED:
            values: dict[str, Any] = {
                "status": LeaveStatus.APPROVED.value,
                "approved_date": now,
                "approval_comments": comments,
                "total_days": working_days,
            }
        else:
            values = {
                "status": LeaveStatus.REJECTED.value,
                "rejected_date": now,
                "rejection_reason": comments,
            }
        await self._guarded_update(application, level, **values)

        if to_status == LeaveStatus.APPROVED:
            await self.quota_service.debit(
                application.user_id,
                leave_type,
                application.start_date.year,
                working_days,
            )

        await self._record_workflow(application.id, level, to_status, approver, comments, now)
        await self.session.flush()

        logger.info(
            "Leave application %s %s by %s",
            application.application_number,
            to_status,
            approver.employee_id if approver else "system",
        )
        return LeaveDecision(
            application_id=application.id,
            status=to_status,
            approval_level=level,
            final=True,
            working_days=working_days if to_status == LeaveStatus.APPROVED else None,
        )

    async def _guarded_update(
        self,
        application: LeaveApplication,
        level: int,
        **values: Any,
    ) -> None:
        """Conditional update that only applies while the application is still
        pending at ``level``; a concurrent decision makes it a no-op."""
        result = await self.session.execute(
            update(LeaveApplication)
            .where(
                LeaveApplication.id == application.id,
                LeaveApplication.status == LeaveStatus.PENDING.value,
                LeaveApplication.approval_level == level,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.refresh(application, ["status", "approval_level"])
            raise InvalidTransitionError(
                application.status,
                values.get("status", application.status),
                "Application changed during decision",
            )
        await self.session.refresh(application, sorted({*values, "status", "approval_level"}))

    async def _record_workflow(
        self,
        application_id: UUID,
        level: int,
        status: str,
        approver: User | None,
        comments: str | None,
        decided_at: datetime,
    ) -> None:
        result = await self.session.execute(
            select(LeaveApprovalWorkflow).where(
                LeaveApprovalWorkflow.leave_application_id == application_id,
                LeaveApprovalWorkflow.approval_level == level,
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            logger.warning(
                "No workflow row for application %s level %s, creating one",
                application_id,
                level,
            )
            entry = LeaveApprovalWorkflow(leave_application_id=application_id, approval_level=level)
            self.session.add(entry)
        entry.status = status
        entry.decision_date = decided_at
        entry.comments = comments
        entry.approver_id = approver.id if approver else None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def history(
        self,
        user: User,
        limit: int = 20,
    ) -> list[tuple[LeaveApplication, LeaveType]]:
        result = await self.session.execute(
            select(LeaveApplication, LeaveType)
            .join(LeaveType, LeaveApplication.leave_type_id == LeaveType.id)
            .where(LeaveApplication.user_id == user.id)
            .order_by(LeaveApplication.created_at.desc(), LeaveApplication.application_number.desc())
            .limit(limit)
        )
        return [(app, lt) for app, lt in result.all()]

    async def list_applications(
        self,
        institution_id: UUID,
        status: str | None = None,
        limit: int = 50,
    ) -> list[tuple[LeaveApplication, User, LeaveType]]:
        query = (
            select(LeaveApplication, User, LeaveType)
            .join(User, LeaveApplication.user_id == User.id)
            .join(LeaveType, LeaveApplication.leave_type_id == LeaveType.id)
            .where(LeaveApplication.institution_id == institution_id)
        )
        if status:
            if status not in LeaveStateMachine.VALID_TRANSITIONS:
                raise ValidationError(f"Unknown status filter: {status}")
            query = query.where(LeaveApplication.status == status)
        result = await self.session.execute(
            query.order_by(LeaveApplication.created_at.desc()).limit(limit)
        )
        return [(app, user, lt) for app, user, lt in result.all()]

    async def currently_on_leave(
        self,
        institution_id: UUID,
        on_date: date,
    ) -> list[tuple[LeaveApplication, User, LeaveType]]:
        """Approved leave of an institution's users covering ``on_date``."""
        result = await self.session.execute(
            select(LeaveApplication, User, LeaveType)
            .join(User, LeaveApplication.user_id == User.id)
            .join(LeaveType, LeaveApplication.leave_type_id == LeaveType.id)
            .where(
                User.institution_id == institution_id,
                approved_leave_on(on_date),
            )
            .order_by(LeaveApplication.end_date, User.full_name)
        )
        return [(app, user, lt) for app, user, lt in result.all()]
