"""Application configuration module.

This module reads environment variables to configure the Flask application,
the database and bearer-token signing. Managed Postgres providers hand out a
``DATABASE_URL`` that may start with ``postgres://``; SQLAlchemy expects
``postgresql://`` so the prefix is normalised here. Variables defined in a
local ``.env`` file are loaded when running locally.
"""

import os
from dotenv import load_dotenv


def _normalise_database_url(url: str) -> str:
    if url.startswith('postgres://'):
        # Only replace the first occurrence, a password may contain the text.
        return url.replace('postgres://', 'postgresql://', 1)
    return url


class Config:
    """Base configuration class.

    Flask reads this with ``app.config.from_object``. The
    :class:`~flask_sqlalchemy.SQLAlchemy` instance connects using
    ``SQLALCHEMY_DATABASE_URI``; without a ``DATABASE_URL`` the application
    falls back to a local SQLite file so it still runs in development.
    """

    load_dotenv()

    # Signs bearer tokens. Must be overridden in production.
    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-this-secret-in-prod')

    SQLALCHEMY_DATABASE_URI = (
        _normalise_database_url(os.environ.get('DATABASE_URL', ''))
        or 'sqlite:///praktikum.db'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Lifetime of an issued bearer token, one day by default.
    TOKEN_MAX_AGE_SECONDS = int(os.environ.get('TOKEN_MAX_AGE_SECONDS', 86400))
