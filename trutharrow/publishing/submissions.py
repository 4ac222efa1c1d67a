from __future__ import annotations

from typing import Optional

import structlog

from ..composer.validation import validate_tip
from ..errors import PersistenceError, StatusTransitionError, ValidationError
from ..models import Identity, SubmissionRecord, SubmissionStatus, Tip
from ..storage.base import AuditRepository, SubmissionRepository

logger = structlog.get_logger(__name__)

_REVIEW_TARGETS = {
    SubmissionStatus.PENDING: {SubmissionStatus.APPROVED, SubmissionStatus.REJECTED},
    SubmissionStatus.APPROVED: {SubmissionStatus.PUBLISHED, SubmissionStatus.REJECTED},
}


class TipDesk:
    """Anonymous tips: intake from visitors, review by admins.

    Tips are not moderated by the judge; every tip lands as pending.
    """

    def __init__(self, submissions: SubmissionRepository, audit: AuditRepository) -> None:
        self._submissions = submissions
        self._audit = audit

    async def submit(self, tip: Tip, identity: Identity) -> SubmissionRecord:
        try:
            cleaned = validate_tip(tip)
        except ValidationError as exc:
            logger.info("tip_validation_failed", fields=sorted(exc.field_errors))
            raise
        try:
            record = await self._submissions.insert_submission(cleaned, identity)
        except PersistenceError as exc:
            logger.error("tip_submit_failed", error=str(exc))
            raise
        logger.info("tip_received", submission_id=record.submission_id, has_contact=record.contact is not None)
        return record

    async def pending(self, limit: Optional[int] = None) -> list[SubmissionRecord]:
        return await self._submissions.list_submissions(status=SubmissionStatus.PENDING, limit=limit)

    async def review(
        self,
        submission_id: str,
        status: SubmissionStatus,
        *,
        actor: str,
        notes: Optional[str] = None,
    ) -> SubmissionRecord:
        current = await self._submissions.get_submission(submission_id)
        if current is None:
            raise PersistenceError(f"Submission {submission_id} not found")
        if status not in _REVIEW_TARGETS.get(current.status, set()):
            raise StatusTransitionError(
                f"Submission {submission_id} is {current.status.value}; cannot move to {status.value}"
            )
        updated = await self._submissions.update_submission_status(
            submission_id, status, reviewed_by=actor, admin_notes=notes
        )
        logger.info("tip_reviewed", submission_id=submission_id, status=status.value, actor=actor)
        try:
            await self._audit.log_audit_event(
                f"submission_{status.value}",
                actor=actor,
                table_name="submissions",
                record_id=submission_id,
                old_data={"status": current.status.value},
                new_data={"status": updated.status.value},
            )
        except PersistenceError as exc:
            logger.error("audit_log_failed", record_id=submission_id, error=str(exc))
        return updated
