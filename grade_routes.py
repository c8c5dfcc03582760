"""Composite grades ("nilai"): 40% practicum, 30% assistance, 30% report."""

from __future__ import annotations

from flask import Blueprint, jsonify

from container import get_container
from models import GradeRecord, Meeting, db
from security import assistant_or_admin, login_required
from validation import json_body, optional_score, require_fields

bp = Blueprint('grades', __name__, url_prefix='/nilai')

# JSON key -> GradeRecord attribute
_SCORE_KEYS = {
    'practicumScore': 'practicum_score',
    'assistanceScore': 'assistance_score',
    'reportScore': 'report_score',
}


@bp.route('/pertemuan/<meeting_id>', methods=['GET'])
@login_required
def list_for_meeting(meeting_id: str):
    records = GradeRecord.query.filter_by(meeting_id=meeting_id).all()
    return jsonify([r.to_dict() for r in records])


@bp.route('/<grade_id>', methods=['GET'])
@login_required
def get_grade(grade_id: str):
    record = db.get_or_404(GradeRecord, grade_id, description='Nilai not found')
    return jsonify(record.to_dict())


@bp.route('/user/<user_id>', methods=['GET'])
@login_required
def list_for_user(user_id: str):
    records = (
        GradeRecord.query
        .join(GradeRecord.meeting)
        .filter(GradeRecord.user_id == user_id)
        .order_by(Meeting.number)
        .all()
    )
    return jsonify([r.to_dict() for r in records])


@bp.route('/pertemuan/<meeting_id>', methods=['POST'])
@assistant_or_admin
def upsert_grade(meeting_id: str):
    data = json_body()
    require_fields(data, 'userId')
    # Only keys present in the body are applied; the others keep their value.
    scores = {
        attr: optional_score(data, key)
        for key, attr in _SCORE_KEYS.items()
        if key in data
    }
    record, created = get_container().grades.upsert(meeting_id, str(data['userId']), scores)
    return jsonify(record.to_dict()), 201 if created else 200


@bp.route('/<grade_id>', methods=['DELETE'])
@assistant_or_admin
def delete_grade(grade_id: str):
    record = db.get_or_404(GradeRecord, grade_id, description='Nilai not found')
    db.session.delete(record)
    db.session.commit()
    return '', 204
