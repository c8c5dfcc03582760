"""Report submission and grading rules.

Three components share the relational store, which each receives as an
explicit session handle:

* :class:`DeadlineResolver` – the deadline of a report filed for meeting ``n``
  is the practicum date of meeting ``n + 1`` in the same period. There is no
  fallback when that meeting or its practicum does not exist yet.
* :class:`SubmissionEvaluator` – records at most one report per user and
  meeting, freezes its lateness at submission time and applies the late
  penalty whenever the report is scored.
* :class:`GradeAggregator` – keeps the single composite grade per user and
  meeting, recomputing the weighted final score on every change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app_logging import get_logger
from errors import (
    DeadlineNotYetAvailable,
    DuplicateSubmission,
    NotFoundError,
    PracticumNotScheduled,
)
from models import GradeRecord, Meeting, ReportSubmission, User, utcnow

LATE_PENALTY_FACTOR = 0.8

PRACTICUM_WEIGHT = 0.4
ASSISTANCE_WEIGHT = 0.3
REPORT_WEIGHT = 0.3

LATE_SUBMISSION_WARNING = 'Laporan was submitted after the deadline. This may affect your score.'
LATE_PENALTY_NOTE = 'Score was reduced by 20% due to late submission'

GRADE_FIELDS = ('practicum_score', 'assistance_score', 'report_score')

Clock = Callable[[], datetime]

_logger = get_logger("app.workflow")


def _get_meeting(session: Session, meeting_id: str) -> Meeting:
    meeting = session.get(Meeting, meeting_id)
    if meeting is None:
        raise NotFoundError('Pertemuan not found')
    return meeting


class DeadlineResolver:
    """Derives report deadlines from the schedule of the following meeting."""

    def __init__(self, session: Session):
        self._session = session

    def next_meeting(self, meeting: Meeting) -> Optional[Meeting]:
        return (
            self._session.query(Meeting)
            .options(joinedload(Meeting.practicum))
            .filter_by(period_id=meeting.period_id, number=meeting.number + 1)
            .first()
        )

    def resolve_for(self, meeting: Meeting) -> datetime:
        following = self.next_meeting(meeting)
        if following is None or following.practicum is None or following.practicum.date is None:
            raise DeadlineNotYetAvailable()
        return following.practicum.date

    def resolve(self, meeting_id: str) -> datetime:
        return self.resolve_for(_get_meeting(self._session, meeting_id))

    @staticmethod
    def deadlines_for(meetings: Iterable[Meeting]) -> Dict[str, Optional[datetime]]:
        """Resolve many meetings at once from an already loaded collection.

        Meetings whose successor is missing from ``meetings`` or unscheduled
        map to ``None``.
        """
        meetings = list(meetings)
        scheduled = {
            (m.period_id, m.number): m.practicum.date
            for m in meetings
            if m.practicum is not None
        }
        return {m.id: scheduled.get((m.period_id, m.number + 1)) for m in meetings}


@dataclass(frozen=True)
class SubmissionResult:
    submission: ReportSubmission
    form_url: str
    warning: Optional[str] = None


@dataclass(frozen=True)
class ScoreResult:
    submission: ReportSubmission
    note: Optional[str] = None


def penalised_score(raw_score: float, is_late: bool) -> float:
    """Stored score for a raw grader input. Derived afresh on every rescore."""
    return raw_score * LATE_PENALTY_FACTOR if is_late else raw_score


class SubmissionEvaluator:
    """Files report submissions and scores them."""

    def __init__(self, session: Session, resolver: DeadlineResolver, clock: Clock = utcnow):
        self._session = session
        self._resolver = resolver
        self._clock = clock

    def submit(self, meeting_id: str, user_id: str) -> SubmissionResult:
        """Record the report of ``user_id`` for ``meeting_id``.

        Every precondition is checked before anything is written, so a
        rejected submission leaves no record behind.
        """
        meeting = _get_meeting(self._session, meeting_id)
        if meeting.practicum is None:
            raise PracticumNotScheduled()
        if self._session.get(User, user_id) is None:
            raise NotFoundError('User not found')

        deadline = self._resolver.resolve_for(meeting)

        existing = (
            self._session.query(ReportSubmission)
            .filter_by(user_id=user_id, meeting_id=meeting_id)
            .first()
        )
        if existing is not None:
            raise DuplicateSubmission()

        now = self._clock()
        submission = ReportSubmission(
            user_id=user_id,
            meeting_id=meeting_id,
            submitted_at=now,
            deadline=deadline,
            is_late=now > deadline,
        )
        self._session.add(submission)
        try:
            self._session.commit()
        except IntegrityError:
            # Lost a race with a concurrent submission for the same pair.
            self._session.rollback()
            raise DuplicateSubmission()

        _logger.info(
            "laporan submitted",
            extra={"submission_id": submission.id, "meeting_id": meeting_id, "is_late": submission.is_late},
        )
        warning = None
        if submission.is_late:
            warning = LATE_SUBMISSION_WARNING
            _logger.warning(
                "late laporan submission",
                extra={"submission_id": submission.id, "deadline": deadline, "submitted_at": now},
            )
        return SubmissionResult(submission=submission, form_url=meeting.practicum.form_url, warning=warning)

    def score(self, submission_id: str, raw_score: float) -> ScoreResult:
        submission = self._session.get(ReportSubmission, submission_id)
        if submission is None:
            raise NotFoundError('Laporan not found')
        submission.raw_score = raw_score
        submission.score = penalised_score(raw_score, submission.is_late)
        self._session.commit()
        _logger.info(
            "laporan scored",
            extra={"submission_id": submission.id, "raw_score": raw_score, "stored_score": submission.score},
        )
        return ScoreResult(submission=submission, note=LATE_PENALTY_NOTE if submission.is_late else None)

    def deadlines(self, user_id: str) -> List[Dict[str, Any]]:
        """Deadline overview of every scheduled meeting for one user.

        Only meetings with a practicum whose deadline can already be
        determined are listed.
        """
        meetings = (
            self._session.query(Meeting)
            .options(joinedload(Meeting.practicum), joinedload(Meeting.period))
            .order_by(Meeting.number)
            .all()
        )
        submissions = {
            s.meeting_id: s
            for s in self._session.query(ReportSubmission).filter_by(user_id=user_id)
        }
        deadlines = self._resolver.deadlines_for(meetings)

        overview = []
        for meeting in meetings:
            deadline = deadlines[meeting.id]
            if meeting.practicum is None or deadline is None:
                continue
            submission = submissions.get(meeting.id)
            overview.append({
                'meetingId': meeting.id,
                'sequenceNumber': meeting.number,
                'periodName': meeting.period.name,
                'practicumDate': meeting.practicum.date.isoformat(),
                'formUrl': meeting.practicum.form_url,
                'deadline': deadline.isoformat(),
                'hasSubmitted': submission is not None,
                'isLate': submission.is_late if submission is not None else False,
            })
        return overview


def compute_final_score(
    practicum_score: Optional[float],
    assistance_score: Optional[float],
    report_score: Optional[float],
) -> Optional[float]:
    """Weighted final score, or ``None`` until all three components exist.

    A score of ``0`` is a real score and counts as present.
    """
    if practicum_score is None or assistance_score is None or report_score is None:
        return None
    return (
        practicum_score * PRACTICUM_WEIGHT
        + assistance_score * ASSISTANCE_WEIGHT
        + report_score * REPORT_WEIGHT
    )


class GradeAggregator:
    """Upserts the composite grade of a user for a meeting."""

    def __init__(self, session: Session):
        self._session = session

    def upsert(self, meeting_id: str, user_id: str, scores: Mapping[str, Optional[float]]) -> Tuple[GradeRecord, bool]:
        """Apply the supplied component ``scores`` and recompute the final score.

        ``scores`` maps any of :data:`GRADE_FIELDS` to a value; keys that are
        absent leave the stored component untouched. Returns the record and
        whether it was created.
        """
        _get_meeting(self._session, meeting_id)
        unknown = set(scores) - set(GRADE_FIELDS)
        if unknown:
            raise ValueError(f"unknown grade fields: {sorted(unknown)}")

        record = (
            self._session.query(GradeRecord)
            .filter_by(user_id=user_id, meeting_id=meeting_id)
            .first()
        )
        created = record is None
        if created:
            if self._session.get(User, user_id) is None:
                raise NotFoundError('User not found')
            record = GradeRecord(user_id=user_id, meeting_id=meeting_id)
            self._session.add(record)

        for field, value in scores.items():
            setattr(record, field, value)
        record.final_score = compute_final_score(
            record.practicum_score, record.assistance_score, record.report_score
        )
        self._session.commit()

        _logger.info(
            "nilai saved",
            extra={"grade_id": record.id, "meeting_id": meeting_id, "was_created": created,
                   "final_score": record.final_score},
        )
        return record, created


__all__ = [
    "DeadlineResolver",
    "GradeAggregator",
    "LATE_PENALTY_FACTOR",
    "ScoreResult",
    "SubmissionEvaluator",
    "SubmissionResult",
    "compute_final_score",
    "penalised_score",
]
