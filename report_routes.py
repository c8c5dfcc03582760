"""Report ("laporan") submission, scoring and deadline endpoints.

* ``POST /laporan/pertemuan/<meeting_id>`` – file a report. The deadline is the
  practicum date of the next meeting; a late filing is accepted with a warning.
* ``PUT /laporan/<id>/score`` – score a report; late reports lose 20%.
* ``GET /laporan/deadlines/<user_id>`` – deadline overview for a user.
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from container import get_container
from errors import BadRequestError, NotFoundError
from models import Meeting, ReportSubmission, db
from security import assistant_or_admin, current_identity, login_required
from validation import json_body, optional_score

bp = Blueprint('reports', __name__, url_prefix='/laporan')


def _submission_or_404(submission_id: str) -> ReportSubmission:
    return db.get_or_404(ReportSubmission, submission_id, description='Laporan not found')


@bp.route('/pertemuan/<meeting_id>', methods=['GET'])
@login_required
def list_for_meeting(meeting_id: str):
    submissions = ReportSubmission.query.filter_by(meeting_id=meeting_id).all()
    return jsonify([s.to_dict() for s in submissions])


@bp.route('/<submission_id>', methods=['GET'])
@login_required
def get_submission(submission_id: str):
    return jsonify(_submission_or_404(submission_id).to_dict())


@bp.route('/user/<user_id>', methods=['GET'])
@login_required
def list_for_user(user_id: str):
    submissions = (
        ReportSubmission.query
        .join(ReportSubmission.meeting)
        .filter(ReportSubmission.user_id == user_id)
        .order_by(Meeting.number)
        .all()
    )
    return jsonify([s.to_dict() for s in submissions])


@bp.route('/pertemuan/<meeting_id>', methods=['POST'])
@login_required
def submit(meeting_id: str):
    data = json_body(required=False)
    # formUrl in the body is informational; the practicum's URL is returned.
    user_id = data.get('userId') or current_identity().user_id
    result = get_container().submissions.submit(meeting_id, str(user_id))

    body = {'submission': result.submission.to_dict(), 'formUrl': result.form_url}
    if result.warning:
        body['warning'] = result.warning
    return jsonify(body), 201


@bp.route('/pertemuan/<meeting_id>/form', methods=['GET'])
@login_required
def form_url(meeting_id: str):
    meeting = db.get_or_404(Meeting, meeting_id, description='Pertemuan not found')
    if meeting.practicum is None:
        raise NotFoundError('Praktikum not found for this pertemuan')
    return jsonify({'formUrl': meeting.practicum.form_url})


@bp.route('/<submission_id>/score', methods=['PUT'])
@assistant_or_admin
def score(submission_id: str):
    raw_score = optional_score(json_body(), 'score')
    if raw_score is None:
        raise BadRequestError('score required')
    result = get_container().submissions.score(submission_id, raw_score)

    body = {'submission': result.submission.to_dict()}
    if result.note:
        body['note'] = result.note
    return jsonify(body)


@bp.route('/deadlines/<user_id>', methods=['GET'])
@login_required
def deadlines(user_id: str):
    return jsonify(get_container().submissions.deadlines(user_id))


@bp.route('/<submission_id>', methods=['DELETE'])
@assistant_or_admin
def delete_submission(submission_id: str):
    db.session.delete(_submission_or_404(submission_id))
    db.session.commit()
    return '', 204
