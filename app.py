"""Flask application providing the lab practicum workflow API.

This module wires together the configuration, database, logging middleware,
workflow components and the resource blueprints:

* ``/auth`` – registration and login, issuing bearer tokens.
* ``/periods`` – periods and their numbered meetings ("pertemuan").
* ``/praktikum`` – practicum sessions scheduled for meetings.
* ``/asistensi`` – assistance attendance records.
* ``/laporan`` – report submission with deadline tracking and scoring.
* ``/nilai`` – composite grades.

Every route except ``/``, ``/health`` and ``/auth`` requires an
``Authorization: Bearer <token>`` header.
"""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional

from flask import Flask, jsonify

from app_logging import configure_logging
from assistance_routes import bp as assistance_bp
from auth_routes import bp as auth_bp
from config import Config
from container import init_container
from db_utils import create_schema
from errors import register_error_handlers
from grade_routes import bp as grades_bp
from middleware import init_correlation_id, init_request_logging
from models import db
from period_routes import bp as periods_bp
from practicum_routes import bp as practicum_bp
from report_routes import bp as reports_bp
from workflow import Clock


def create_app(overrides: Optional[Mapping[str, Any]] = None, *, clock: Optional[Clock] = None) -> Flask:
    """Application factory used by both the server and tests.

    ``overrides`` are applied on top of :class:`config.Config` before the
    database is bound, so tests can point the app at an in-memory database.
    ``clock`` replaces the time source used to judge report lateness.
    """
    configure_logging()

    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    db.init_app(app)
    init_container(app, db.session, clock=clock)

    init_correlation_id(app)
    init_request_logging(app)
    register_error_handlers(app)

    for blueprint in (auth_bp, periods_bp, practicum_bp, assistance_bp, reports_bp, grades_bp):
        app.register_blueprint(blueprint)

    @app.route('/')
    def index():
        return jsonify({'message': 'Praktikum Management API is running'})

    @app.route('/health')
    def healthcheck():
        """Lightweight endpoint used by router health checks."""
        return jsonify({'status': 'ok'}), 200

    create_schema(app)
    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    create_app().run(host='0.0.0.0', port=port, debug=True)
