from datetime import datetime, timedelta

import pytest

from conftest import make_meetings, make_user, schedule_practicum
from errors import DeadlineNotYetAvailable, DuplicateSubmission, NotFoundError, PracticumNotScheduled
from models import GradeRecord, ReportSubmission, db
from workflow import (
    LATE_PENALTY_NOTE,
    LATE_SUBMISSION_WARNING,
    DeadlineResolver,
    GradeAggregator,
    SubmissionEvaluator,
    compute_final_score,
)

DEADLINE = datetime(2024, 3, 8, 8, 0, 0)


def _evaluator(now):
    return SubmissionEvaluator(db.session, DeadlineResolver(db.session), clock=lambda: now)


def test_deadline_is_next_meetings_practicum_date(ctx):
    first, second, _third = make_meetings(3)
    schedule_practicum(second, DEADLINE)
    resolver = DeadlineResolver(db.session)

    assert resolver.resolve(first.id) == DEADLINE
    with pytest.raises(DeadlineNotYetAvailable):
        resolver.resolve(second.id)


def test_deadline_ignores_meetings_of_other_periods(ctx):
    (first,) = make_meetings(1, name='Ganjil 2023')
    _, other_second = make_meetings(2, name='Genap 2024')
    schedule_practicum(other_second, DEADLINE)

    with pytest.raises(DeadlineNotYetAvailable):
        DeadlineResolver(db.session).resolve(first.id)


def test_deadline_for_unknown_meeting(ctx):
    with pytest.raises(NotFoundError):
        DeadlineResolver(db.session).resolve('missing')


def test_submission_at_deadline_is_on_time(ctx):
    first, second = make_meetings(2)
    schedule_practicum(first, DEADLINE - timedelta(days=7))
    schedule_practicum(second, DEADLINE)
    on_time_user = make_user('on-time@lab.test')
    late_user = make_user('late@lab.test')

    on_time = _evaluator(DEADLINE).submit(first.id, on_time_user.id)
    late = _evaluator(DEADLINE + timedelta(microseconds=1)).submit(first.id, late_user.id)

    assert on_time.submission.is_late is False
    assert on_time.warning is None
    assert on_time.form_url == 'https://forms.gle/meeting-1'
    assert late.submission.is_late is True
    assert late.warning == LATE_SUBMISSION_WARNING
    assert late.submission.deadline == DEADLINE
    assert late.submission.submitted_at == DEADLINE + timedelta(microseconds=1)


def test_duplicate_submission_is_rejected(ctx):
    first, second = make_meetings(2)
    schedule_practicum(first, DEADLINE - timedelta(days=7))
    schedule_practicum(second, DEADLINE)
    user = make_user()

    original = _evaluator(DEADLINE - timedelta(days=1)).submit(first.id, user.id).submission
    with pytest.raises(DuplicateSubmission) as excinfo:
        _evaluator(DEADLINE + timedelta(days=1)).submit(first.id, user.id)

    assert excinfo.value.kind == 'Conflict'
    stored = ReportSubmission.query.filter_by(user_id=user.id).all()
    assert [s.id for s in stored] == [original.id]
    assert stored[0].is_late is False


def test_submission_requires_practicum(ctx):
    first, second = make_meetings(2)
    schedule_practicum(second, DEADLINE)
    user = make_user()

    with pytest.raises(PracticumNotScheduled):
        _evaluator(DEADLINE).submit(first.id, user.id)
    assert ReportSubmission.query.count() == 0


def test_submission_requires_known_deadline(ctx):
    (only,) = make_meetings(1)
    schedule_practicum(only, DEADLINE)
    user = make_user()

    with pytest.raises(DeadlineNotYetAvailable):
        _evaluator(DEADLINE).submit(only.id, user.id)
    assert ReportSubmission.query.count() == 0


def test_lateness_is_frozen_when_next_meeting_moves(ctx):
    first, second = make_meetings(2)
    schedule_practicum(first, DEADLINE - timedelta(days=7))
    next_practicum = schedule_practicum(second, DEADLINE)
    user = make_user()
    submission = _evaluator(DEADLINE + timedelta(hours=1)).submit(first.id, user.id).submission

    next_practicum.date = DEADLINE + timedelta(days=7)
    db.session.commit()
    db.session.expire_all()

    stored = db.session.get(ReportSubmission, submission.id)
    assert stored.deadline == DEADLINE
    assert stored.is_late is True
    with pytest.raises(AttributeError):
        stored.is_late = False


def test_late_penalty_is_derived_from_raw_score_each_time(ctx):
    first, second = make_meetings(2)
    schedule_practicum(first, DEADLINE - timedelta(days=7))
    schedule_practicum(second, DEADLINE)
    user = make_user()
    evaluator = _evaluator(DEADLINE + timedelta(days=1))
    submission = evaluator.submit(first.id, user.id).submission

    result = evaluator.score(submission.id, 90)
    assert result.submission.score == pytest.approx(72.0)
    assert result.note == LATE_PENALTY_NOTE

    result = evaluator.score(submission.id, 50)
    assert result.submission.score == pytest.approx(40.0)
    assert result.submission.raw_score == 50


def test_on_time_score_is_stored_unchanged(ctx):
    first, second = make_meetings(2)
    schedule_practicum(first, DEADLINE - timedelta(days=7))
    schedule_practicum(second, DEADLINE)
    user = make_user()
    evaluator = _evaluator(DEADLINE - timedelta(days=1))
    submission = evaluator.submit(first.id, user.id).submission

    result = evaluator.score(submission.id, 90)
    assert result.submission.score == 90
    assert result.note is None


def test_scoring_unknown_submission(ctx):
    with pytest.raises(NotFoundError):
        _evaluator(DEADLINE).score('missing', 80)


def test_deadline_overview_lists_only_known_deadlines(ctx):
    first, second, third = make_meetings(3)
    schedule_practicum(first, DEADLINE - timedelta(days=7))
    schedule_practicum(second, DEADLINE)
    schedule_practicum(third, DEADLINE + timedelta(days=7))
    user = make_user()
    evaluator = _evaluator(DEADLINE + timedelta(hours=2))
    evaluator.submit(first.id, user.id)

    overview = evaluator.deadlines(user.id)

    assert [row['sequenceNumber'] for row in overview] == [1, 2]
    assert overview[0]['meetingId'] == first.id
    assert overview[0]['deadline'] == DEADLINE.isoformat()
    assert overview[0]['hasSubmitted'] is True
    assert overview[0]['isLate'] is True
    assert overview[0]['periodName'] == 'Genap 2024'
    assert overview[1]['hasSubmitted'] is False
    assert overview[1]['isLate'] is False


def test_final_score_needs_all_components():
    assert compute_final_score(80, None, 60) is None
    assert compute_final_score(80, 70, 60) == pytest.approx(71.0)
    assert compute_final_score(0, 0, 0) == 0


def test_grade_upsert_recomputes_final_score(ctx):
    (meeting,) = make_meetings(1)
    user = make_user()
    aggregator = GradeAggregator(db.session)

    record, created = aggregator.upsert(meeting.id, user.id, {'practicum_score': 80})
    assert created is True
    assert record.final_score is None

    record, created = aggregator.upsert(
        meeting.id, user.id, {'assistance_score': 70, 'report_score': 60}
    )
    assert created is False
    assert record.practicum_score == 80
    assert record.final_score == pytest.approx(71.0)
    assert GradeRecord.query.filter_by(user_id=user.id, meeting_id=meeting.id).count() == 1


def test_zero_component_still_yields_final_score(ctx):
    (meeting,) = make_meetings(1)
    user = make_user()

    record, _ = GradeAggregator(db.session).upsert(
        meeting.id, user.id,
        {'practicum_score': 0, 'assistance_score': 100, 'report_score': 100},
    )

    assert record.final_score == pytest.approx(60.0)


def test_grade_for_unknown_meeting(ctx):
    user = make_user()
    with pytest.raises(NotFoundError):
        GradeAggregator(db.session).upsert('missing', user.id, {'practicum_score': 80})
