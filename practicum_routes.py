"""Practicum sessions scheduled for meetings.

A meeting has at most one practicum. Its date is what the reports of the
previous meeting are due by, and its ``formUrl`` is where students file them.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from sqlalchemy.orm import joinedload

from db_utils import commit_or_conflict
from errors import ConflictError, InvalidFormUrl, NotFoundError
from models import Meeting, Practicum, db
from security import admin_only, login_required
from validation import json_body, parse_datetime, require_absolute_url, require_fields

bp = Blueprint('practicum', __name__, url_prefix='/praktikum')

_EXISTS = 'Praktikum already exists for this pertemuan'


def _with_meeting():
    return Practicum.query.options(joinedload(Practicum.meeting).joinedload(Meeting.period))


@bp.route('', methods=['GET'])
@login_required
def list_practicums():
    practicums = _with_meeting().order_by(Practicum.date).all()
    return jsonify([p.to_dict(with_meeting=True) for p in practicums])


@bp.route('/<practicum_id>', methods=['GET'])
@login_required
def get_practicum(practicum_id: str):
    practicum = db.get_or_404(Practicum, practicum_id, description='Praktikum not found')
    return jsonify(practicum.to_dict(with_meeting=True))


@bp.route('/period/<period_id>', methods=['GET'])
@login_required
def list_period_practicums(period_id: str):
    practicums = (
        _with_meeting()
        .join(Practicum.meeting)
        .filter(Meeting.period_id == period_id)
        .order_by(Meeting.number)
        .all()
    )
    return jsonify([p.to_dict(with_meeting=True) for p in practicums])


@bp.route('/pertemuan/<meeting_id>', methods=['GET'])
@login_required
def get_meeting_practicum(meeting_id: str):
    practicum = _with_meeting().filter_by(meeting_id=meeting_id).first()
    if practicum is None:
        raise NotFoundError('Praktikum not found')
    return jsonify(practicum.to_dict(with_meeting=True))


@bp.route('/pertemuan/<meeting_id>', methods=['POST'])
@admin_only
def schedule_practicum(meeting_id: str):
    data = json_body()
    if not data.get('formUrl'):
        raise InvalidFormUrl('Form URL is required for laporan submissions')
    form_url = require_absolute_url(data['formUrl'])
    require_fields(data, 'date')
    date = parse_datetime(data['date'], 'date')

    meeting = db.get_or_404(Meeting, meeting_id, description='Pertemuan not found')
    if meeting.practicum is not None:
        raise ConflictError(_EXISTS)

    practicum = Practicum(
        name=data.get('name') or f'{meeting.period.name} Pertemuan {meeting.number}',
        description=data.get('description'),
        date=date,
        form_url=form_url,
        meeting_id=meeting.id,
    )
    db.session.add(practicum)
    commit_or_conflict(_EXISTS)
    return jsonify(practicum.to_dict(with_meeting=True)), 201


@bp.route('/<practicum_id>', methods=['PUT'])
@admin_only
def update_practicum(practicum_id: str):
    practicum = db.get_or_404(Practicum, practicum_id, description='Praktikum not found')
    data = json_body()
    if data.get('formUrl'):
        practicum.form_url = require_absolute_url(data['formUrl'])
    if data.get('date'):
        practicum.date = parse_datetime(data['date'], 'date')
    if data.get('name'):
        practicum.name = str(data['name'])
    if 'description' in data:
        practicum.description = data['description']
    db.session.commit()
    return jsonify(practicum.to_dict(with_meeting=True))


@bp.route('/<practicum_id>', methods=['DELETE'])
@admin_only
def delete_practicum(practicum_id: str):
    practicum = db.get_or_404(Practicum, practicum_id, description='Praktikum not found')
    db.session.delete(practicum)
    db.session.commit()
    return '', 204
