"""Assistance ("asistensi") attendance records, one per user and meeting."""

from __future__ import annotations

from flask import Blueprint, jsonify

from db_utils import commit_or_conflict
from errors import BadRequestError, ConflictError, NotFoundError
from models import AssistanceRecord, Meeting, User, db
from security import assistant_or_admin, login_required
from validation import json_body, optional_score, require_fields

bp = Blueprint('assistance', __name__, url_prefix='/asistensi')

_EXISTS = 'Asistensi already exists for this user and pertemuan'


def _record_or_404(record_id: str) -> AssistanceRecord:
    return db.get_or_404(AssistanceRecord, record_id, description='Asistensi not found')


def _attendance(data: dict) -> bool:
    value = data.get('attendance')
    if not isinstance(value, bool):
        raise BadRequestError('attendance must be a boolean')
    return value


@bp.route('/pertemuan/<meeting_id>', methods=['GET'])
@login_required
def list_for_meeting(meeting_id: str):
    records = AssistanceRecord.query.filter_by(meeting_id=meeting_id).all()
    return jsonify([r.to_dict() for r in records])


@bp.route('/<record_id>', methods=['GET'])
@login_required
def get_record(record_id: str):
    return jsonify(_record_or_404(record_id).to_dict())


@bp.route('/user/<user_id>', methods=['GET'])
@login_required
def list_for_user(user_id: str):
    records = (
        AssistanceRecord.query
        .join(AssistanceRecord.meeting)
        .filter(AssistanceRecord.user_id == user_id)
        .order_by(Meeting.number)
        .all()
    )
    return jsonify([r.to_dict() for r in records])


@bp.route('/pertemuan/<meeting_id>', methods=['POST'])
@assistant_or_admin
def create_record(meeting_id: str):
    meeting = db.get_or_404(Meeting, meeting_id, description='Pertemuan not found')
    data = json_body()
    require_fields(data, 'userId')
    if db.session.get(User, data['userId']) is None:
        raise NotFoundError('User not found')
    attendance = _attendance(data)
    score = optional_score(data, 'score')

    if AssistanceRecord.query.filter_by(user_id=data['userId'], meeting_id=meeting.id).first():
        raise ConflictError(_EXISTS)

    record = AssistanceRecord(
        user_id=data['userId'],
        meeting_id=meeting.id,
        attendance=attendance,
        score=score,
    )
    db.session.add(record)
    commit_or_conflict(_EXISTS)
    return jsonify(record.to_dict()), 201


@bp.route('/<record_id>', methods=['PUT'])
@assistant_or_admin
def update_record(record_id: str):
    record = _record_or_404(record_id)
    data = json_body()
    if 'attendance' in data:
        record.attendance = _attendance(data)
    if 'score' in data:
        record.score = optional_score(data, 'score')
    db.session.commit()
    return jsonify(record.to_dict())


@bp.route('/<record_id>', methods=['DELETE'])
@assistant_or_admin
def delete_record(record_id: str):
    db.session.delete(_record_or_404(record_id))
    db.session.commit()
    return '', 204
