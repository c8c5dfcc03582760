import sys
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app import create_app
from models import Meeting, Period, Practicum, Role, User, db
from security import hash_password


class FrozenClock:
    """Time source the tests move by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 3, 1, 9, 0, 0))


@pytest.fixture
def app(monkeypatch: pytest.MonkeyPatch, clock: FrozenClock) -> Generator:
    monkeypatch.setenv('REQUEST_LOG_SAMPLE_RATE', '1')
    application = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SECRET_KEY': 'test-secret',
        },
        clock=clock,
    )
    yield application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


def _register(client, name: str, email: str, role: Role) -> dict:
    response = client.post('/auth/register', json={
        'name': name,
        'email': email,
        'password': 'secret-pass',
        'role': role.value,
    })
    assert response.status_code == 200, response.get_json()
    data = response.get_json()
    return {
        'user': data['user'],
        'token': data['token'],
        'headers': {'Authorization': f"Bearer {data['token']}"},
    }


@pytest.fixture
def admin(client) -> dict:
    return _register(client, 'Lab Admin', 'admin@lab.test', Role.ADMIN)


@pytest.fixture
def assistant(client) -> dict:
    return _register(client, 'Lab Assistant', 'assistant@lab.test', Role.LAB_ASSISTANT)


@pytest.fixture
def student(client) -> dict:
    return _register(client, 'Student One', 'student@lab.test', Role.STUDENT)


@pytest.fixture
def schedule(client, admin):
    """Create a period with meetings and practicum dates over HTTP.

    ``dates`` maps a meeting number to a practicum date string, or ``None``
    for a meeting without practicum. Returns the meeting ids by number.
    """

    def _schedule(dates: dict) -> dict:
        period = client.post('/periods', headers=admin['headers'], json={
            'name': 'Genap 2024',
            'startDate': '2024-02-01',
            'endDate': '2024-06-30',
        }).get_json()
        ids = {}
        for number, date in sorted(dates.items()):
            meeting = client.post(
                f"/periods/{period['id']}/pertemuan",
                headers=admin['headers'],
                json={'number': number},
            ).get_json()
            ids[number] = meeting['id']
            if date is not None:
                response = client.post(
                    f"/praktikum/pertemuan/{meeting['id']}",
                    headers=admin['headers'],
                    json={'date': date, 'formUrl': f'https://forms.gle/meeting-{number}'},
                )
                assert response.status_code == 201, response.get_json()
        return ids

    return _schedule


# ---------------------------------------------------------------------------
# ORM helpers for tests that drive the workflow components directly
# ---------------------------------------------------------------------------

def make_user(email: str = 'student@lab.test', role: Role = Role.STUDENT) -> User:
    user = User(name=email.split('@')[0], email=email, password_hash=hash_password('pw'), role=role)
    db.session.add(user)
    db.session.commit()
    return user


def make_meetings(count: int, name: str = 'Genap 2024') -> list:
    period = Period(name=name, start_date=datetime(2024, 2, 1), end_date=datetime(2024, 6, 30))
    db.session.add(period)
    meetings = [Meeting(period=period, number=number) for number in range(1, count + 1)]
    db.session.add_all(meetings)
    db.session.commit()
    return meetings


def schedule_practicum(meeting: Meeting, date: datetime) -> Practicum:
    practicum = Practicum(
        name=f'Pertemuan {meeting.number}',
        date=date,
        form_url=f'https://forms.gle/meeting-{meeting.number}',
        meeting=meeting,
    )
    db.session.add(practicum)
    db.session.commit()
    return practicum
