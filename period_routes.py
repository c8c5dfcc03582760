"""Periods and the meetings scheduled within them.

* ``GET /periods`` / ``GET /periods/<id>`` – periods with their meetings.
* ``POST /periods``, ``PUT /periods/<id>``, ``DELETE /periods/<id>`` – admin only.
* ``GET /periods/<period_id>/pertemuan`` – meetings ordered by number.
* ``POST /periods/<period_id>/pertemuan`` – add a meeting (admin only). The
  number must not already exist in the period.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from sqlalchemy.orm import selectinload

from db_utils import commit_or_conflict
from errors import BadRequestError, ConflictError
from models import Meeting, Period, db
from security import admin_only, login_required
from validation import json_body, parse_datetime, require_fields

bp = Blueprint('periods', __name__, url_prefix='/periods')


def _period_or_404(period_id: str) -> Period:
    return db.get_or_404(Period, period_id, description='Period not found')


def _apply_period_fields(period: Period, data: dict) -> None:
    start = parse_datetime(data['startDate'], 'startDate')
    end = parse_datetime(data['endDate'], 'endDate')
    if end < start:
        raise BadRequestError('endDate must not be before startDate')
    period.name = str(data['name']).strip()
    period.start_date = start
    period.end_date = end


@bp.route('', methods=['GET'])
@login_required
def list_periods():
    periods = (
        Period.query
        .options(selectinload(Period.meetings).selectinload(Meeting.practicum))
        .order_by(Period.start_date)
        .all()
    )
    return jsonify([p.to_dict(with_meetings=True) for p in periods])


@bp.route('/<period_id>', methods=['GET'])
@login_required
def get_period(period_id: str):
    return jsonify(_period_or_404(period_id).to_dict(with_meetings=True))


@bp.route('', methods=['POST'])
@admin_only
def create_period():
    data = json_body()
    require_fields(data, 'name', 'startDate', 'endDate')
    period = Period()
    _apply_period_fields(period, data)
    db.session.add(period)
    db.session.commit()
    return jsonify(period.to_dict()), 201


@bp.route('/<period_id>', methods=['PUT'])
@admin_only
def update_period(period_id: str):
    period = _period_or_404(period_id)
    data = json_body()
    require_fields(data, 'name', 'startDate', 'endDate')
    _apply_period_fields(period, data)
    db.session.commit()
    return jsonify(period.to_dict())


@bp.route('/<period_id>', methods=['DELETE'])
@admin_only
def delete_period(period_id: str):
    db.session.delete(_period_or_404(period_id))
    db.session.commit()
    return '', 204


@bp.route('/<period_id>/pertemuan', methods=['GET'])
@login_required
def list_meetings(period_id: str):
    meetings = (
        Meeting.query
        .filter_by(period_id=period_id)
        .options(selectinload(Meeting.practicum))
        .order_by(Meeting.number)
        .all()
    )
    return jsonify([m.to_dict(with_practicum=True) for m in meetings])


@bp.route('/<period_id>/pertemuan', methods=['POST'])
@admin_only
def create_meeting(period_id: str):
    period = _period_or_404(period_id)
    data = json_body()
    number = data.get('number')
    if isinstance(number, bool) or not isinstance(number, int) or number < 1:
        raise BadRequestError('number must be a positive integer')

    message = f'Pertemuan {number} already exists for this period'
    if Meeting.query.filter_by(period_id=period.id, number=number).first():
        raise ConflictError(message)

    meeting = Meeting(period_id=period.id, number=number)
    db.session.add(meeting)
    commit_or_conflict(message)
    return jsonify(meeting.to_dict()), 201
