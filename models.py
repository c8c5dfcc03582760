"""Database models for the lab practicum workflow.

SQLAlchemy is used as the ORM layer. The models are:

* :class:`User` – an account with a role (admin, lab assistant or student).
* :class:`Period` – a semester-like time span that owns numbered meetings.
* :class:`Meeting` – one numbered session ("pertemuan") within a period. The
  sequence number is unique per period.
* :class:`Practicum` – the scheduled lab session for a meeting, at most one
  per meeting, carrying the external form URL reports are filed through.
* :class:`AssistanceRecord` – attendance and score of a user at a meeting's
  assistance session ("asistensi").
* :class:`ReportSubmission` – a user's report ("laporan") for a meeting with
  its deadline and lateness frozen at submission time.
* :class:`GradeRecord` – the composite grade ("nilai") of a user for a meeting.

The per-meeting records are unique on ``(user_id, meeting_id)``. That
constraint, not the application-side existence checks, is what keeps two
concurrent requests from creating a duplicate.

Timestamps are stored as naive UTC datetimes.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import declared_attr


db = SQLAlchemy()


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching what the columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Role(str, enum.Enum):
    """Account roles. Values match the identifiers issued in tokens."""

    ADMIN = 'ADMIN'
    LAB_ASSISTANT = 'ASISTEN_LAB'
    STUDENT = 'PRAKTIKAN'


class TimestampMixin:
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def _base_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class User(TimestampMixin, db.Model):
    __tablename__ = 'user'

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(Role, name='role'), nullable=False, default=Role.STUDENT)

    def to_dict(self) -> Dict[str, Any]:
        # Never expose the password hash.
        return {'id': self.id, 'name': self.name, 'email': self.email, 'role': self.role.value}

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role.value}>"


class Period(TimestampMixin, db.Model):
    """A named time span. Deleting a period deletes its meetings."""

    __tablename__ = 'period'

    name = db.Column(db.String(120), nullable=False)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)

    meetings = db.relationship(
        'Meeting',
        back_populates='period',
        order_by='Meeting.number',
        cascade='all, delete-orphan',
    )

    def to_dict(self, with_meetings: bool = False) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(
            name=self.name,
            startDate=_iso(self.start_date),
            endDate=_iso(self.end_date),
        )
        if with_meetings:
            data['meetings'] = [m.to_dict(with_practicum=True) for m in self.meetings]
        return data

    def __repr__(self) -> str:
        return f"<Period {self.name}>"


class Meeting(TimestampMixin, db.Model):
    """A numbered session within a period.

    ``number`` is the sequence number; the table-level unique constraint keeps
    it unique per period. The deadline of a report filed for meeting ``n`` is
    the practicum date of meeting ``n + 1``.
    """

    __tablename__ = 'pertemuan'

    number = db.Column(db.Integer, nullable=False)
    period_id = db.Column(
        db.String(36), db.ForeignKey('period.id', ondelete='CASCADE'), nullable=False
    )

    period = db.relationship('Period', back_populates='meetings')
    practicum = db.relationship(
        'Practicum', back_populates='meeting', uselist=False,
        cascade='all, delete-orphan',
    )
    assistance_records = db.relationship(
        'AssistanceRecord', back_populates='meeting',
        cascade='all, delete-orphan',
    )
    report_submissions = db.relationship(
        'ReportSubmission', back_populates='meeting',
        cascade='all, delete-orphan',
    )
    grade_records = db.relationship(
        'GradeRecord', back_populates='meeting',
        cascade='all, delete-orphan',
    )

    __table_args__ = (db.UniqueConstraint('period_id', 'number', name='uix_pertemuan_period_number'),)

    def to_dict(self, with_practicum: bool = False) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(number=self.number, periodId=self.period_id)
        if with_practicum:
            data['practicum'] = self.practicum.to_dict() if self.practicum else None
        return data

    def summary(self) -> Dict[str, Any]:
        """Meeting with its period and practicum, as embedded in records."""
        data = self.to_dict(with_practicum=True)
        data['period'] = self.period.to_dict() if self.period else None
        return data

    def __repr__(self) -> str:
        return f"<Meeting period={self.period_id} number={self.number}>"


class Practicum(TimestampMixin, db.Model):
    __tablename__ = 'praktikum'

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    date = db.Column(db.DateTime, nullable=False)
    form_url = db.Column(db.String(2048), nullable=False)
    meeting_id = db.Column(
        db.String(36), db.ForeignKey('pertemuan.id', ondelete='CASCADE'),
        unique=True, nullable=False,
    )

    meeting = db.relationship('Meeting', back_populates='practicum')

    def to_dict(self, with_meeting: bool = False) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(
            name=self.name,
            description=self.description,
            date=_iso(self.date),
            formUrl=self.form_url,
            meetingId=self.meeting_id,
        )
        if with_meeting and self.meeting is not None:
            meeting = self.meeting.to_dict()
            meeting['period'] = self.meeting.period.to_dict()
            data['meeting'] = meeting
        return data

    def __repr__(self) -> str:
        return f"<Practicum {self.name} date={self.date}>"


class _UserMeetingRecord(TimestampMixin):
    """Columns and serialisation shared by the per-(user, meeting) records."""

    @declared_attr
    def user_id(cls):
        return db.Column(db.String(36), db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)

    def _record_dict(self, **fields: Any) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(userId=self.user_id, meetingId=self.meeting_id)
        data.update(fields)
        data['user'] = self.user.to_dict() if self.user else None
        data['meeting'] = self.meeting.summary() if self.meeting else None
        return data


class AssistanceRecord(_UserMeetingRecord, db.Model):
    __tablename__ = 'asistensi'

    attendance = db.Column(db.Boolean, nullable=False, default=False)
    score = db.Column(db.Float, nullable=True)
    date = db.Column(db.DateTime, nullable=False, default=utcnow)
    meeting_id = db.Column(
        db.String(36), db.ForeignKey('pertemuan.id', ondelete='CASCADE'), nullable=False
    )

    user = db.relationship('User')
    meeting = db.relationship('Meeting', back_populates='assistance_records')

    __table_args__ = (db.UniqueConstraint('user_id', 'meeting_id', name='uix_asistensi_user_meeting'),)

    def to_dict(self) -> Dict[str, Any]:
        return self._record_dict(attendance=self.attendance, score=self.score, date=_iso(self.date))


class ReportSubmission(_UserMeetingRecord, db.Model):
    """A report filed by a user for a meeting.

    ``deadline`` and ``is_late`` are given to the constructor and exposed as
    read-only properties; they describe the moment of submission and stay
    fixed even if the next meeting is rescheduled. ``raw_score`` keeps the
    grader's input, ``score`` the value after the late penalty.
    """

    __tablename__ = 'laporan'

    submitted_at = db.Column(db.DateTime, nullable=False)
    _deadline = db.Column('deadline', db.DateTime, nullable=False)
    _is_late = db.Column('is_late', db.Boolean, nullable=False)
    raw_score = db.Column(db.Float, nullable=True)
    score = db.Column(db.Float, nullable=True)
    meeting_id = db.Column(
        db.String(36), db.ForeignKey('pertemuan.id', ondelete='CASCADE'), nullable=False
    )

    user = db.relationship('User')
    meeting = db.relationship('Meeting', back_populates='report_submissions')

    __table_args__ = (db.UniqueConstraint('user_id', 'meeting_id', name='uix_laporan_user_meeting'),)

    def __init__(self, *, user_id: str, meeting_id: str, submitted_at: datetime,
                 deadline: datetime, is_late: bool) -> None:
        super().__init__(user_id=user_id, meeting_id=meeting_id, submitted_at=submitted_at)
        self._deadline = deadline
        self._is_late = is_late

    @property
    def deadline(self) -> datetime:
        return self._deadline

    @property
    def is_late(self) -> bool:
        return self._is_late

    def to_dict(self) -> Dict[str, Any]:
        return self._record_dict(
            submittedAt=_iso(self.submitted_at),
            deadline=_iso(self.deadline),
            isLate=self.is_late,
            rawScore=self.raw_score,
            score=self.score,
        )


class GradeRecord(_UserMeetingRecord, db.Model):
    __tablename__ = 'nilai'

    practicum_score = db.Column(db.Float, nullable=True)
    assistance_score = db.Column(db.Float, nullable=True)
    report_score = db.Column(db.Float, nullable=True)
    final_score = db.Column(db.Float, nullable=True)
    meeting_id = db.Column(
        db.String(36), db.ForeignKey('pertemuan.id', ondelete='CASCADE'), nullable=False
    )

    user = db.relationship('User')
    meeting = db.relationship('Meeting', back_populates='grade_records')

    __table_args__ = (db.UniqueConstraint('user_id', 'meeting_id', name='uix_nilai_user_meeting'),)

    def to_dict(self) -> Dict[str, Any]:
        return self._record_dict(
            practicumScore=self.practicum_score,
            assistanceScore=self.assistance_score,
            reportScore=self.report_score,
            finalScore=self.final_score,
        )
