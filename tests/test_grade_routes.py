import pytest

from models import GradeRecord


def _post_grade(client, caller, meeting_id, **scores):
    return client.post(f'/nilai/pertemuan/{meeting_id}', headers=caller['headers'], json=scores)


def test_final_score_appears_once_all_components_are_set(client, assistant, student, schedule):
    ids = schedule({1: '2024-03-01T08:00:00'})
    user_id = student['user']['id']

    created = _post_grade(client, assistant, ids[1], userId=user_id, practicumScore=80)
    assert created.status_code == 201
    assert created.get_json()['finalScore'] is None

    updated = _post_grade(client, assistant, ids[1], userId=user_id, assistanceScore=70, reportScore=60)
    assert updated.status_code == 200
    data = updated.get_json()
    assert data['id'] == created.get_json()['id']
    assert data['practicumScore'] == 80
    assert data['finalScore'] == pytest.approx(71.0)


def test_grade_upsert_keeps_a_single_row(client, app, admin, student, schedule):
    ids = schedule({1: '2024-03-01T08:00:00'})
    user_id = student['user']['id']

    _post_grade(client, admin, ids[1], userId=user_id, practicumScore=80, assistanceScore=80, reportScore=80)
    _post_grade(client, admin, ids[1], userId=user_id, reportScore=50)

    with app.app_context():
        rows = GradeRecord.query.filter_by(user_id=user_id, meeting_id=ids[1]).all()
        assert len(rows) == 1
        assert rows[0].final_score == pytest.approx(71.0)


def test_grade_requires_assistant_or_admin(client, student, schedule):
    ids = schedule({1: '2024-03-01T08:00:00'})

    response = _post_grade(client, student, ids[1], userId=student['user']['id'], practicumScore=80)

    assert response.status_code == 403


def test_grade_for_unknown_meeting(client, admin, student):
    response = _post_grade(client, admin, 'missing', userId=student['user']['id'], practicumScore=80)
    assert response.status_code == 404


def test_grade_rejects_non_numeric_scores(client, admin, student, schedule):
    ids = schedule({1: '2024-03-01T08:00:00'})

    response = _post_grade(client, admin, ids[1], userId=student['user']['id'], practicumScore='A')

    assert response.status_code == 400
    assert response.get_json()['kind'] == 'BadRequest'


def test_grade_reads_and_delete(client, admin, student, schedule):
    ids = schedule({1: '2024-03-01T08:00:00'})
    user_id = student['user']['id']
    grade = _post_grade(client, admin, ids[1], userId=user_id, practicumScore=90).get_json()

    assert client.get(f"/nilai/{grade['id']}", headers=student['headers']).get_json()['practicumScore'] == 90
    assert len(client.get(f'/nilai/pertemuan/{ids[1]}', headers=student['headers']).get_json()) == 1
    assert len(client.get(f'/nilai/user/{user_id}', headers=student['headers']).get_json()) == 1

    assert client.delete(f"/nilai/{grade['id']}", headers=admin['headers']).status_code == 204
    assert client.get(f"/nilai/{grade['id']}", headers=student['headers']).status_code == 404


def test_grade_rejects_infinite_scores(client, admin, student, schedule):
    ids = schedule({1: '2024-03-01T08:00:00'})

    response = client.post(
        f'/nilai/pertemuan/{ids[1]}',
        headers=admin['headers'],
        data='{"userId": "%s", "practicumScore": Infinity}' % student['user']['id'],
        content_type='application/json',
    )

    assert response.status_code == 400
    assert response.get_json()['kind'] == 'BadRequest'
