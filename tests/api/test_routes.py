import pytest

PREFIX = '/api/interviews'


def recruiter(actor_id):
    return {'X-Actor-Id': str(actor_id), 'X-Actor-Role': 'recruiter'}


def student(actor_id):
    return {'X-Actor-Id': str(actor_id), 'X-Actor-Role': 'student'}


def _create_template(client, people, **overrides):
    body = {
        'jobId': people.job_id,
        'title': 'Backend screen',
        'focusSkills': 'Python, SQL',
        'questionCount': 3,
        'difficulty': 'Mid',
    }
    body.update(overrides)
    return client.post(f'{PREFIX}/recruiter/templates', json=body, headers=recruiter(people.recruiter_id))


def _invite(client, people, template_id):
    return client.post(f'{PREFIX}/recruiter/send', headers=recruiter(people.recruiter_id), json={
        'applicationId': people.application_id,
        'templateId': template_id,
        'message': 'Good luck!',
    })


def test_full_interview_flow(client, people, fake_llm):
    # recruiter drafts a template
    rv = _create_template(client, people)
    assert rv.status_code == 201
    template = rv.get_json()['template']
    assert len(template['questions']) == 3

    rv = client.get(f'{PREFIX}/recruiter/templates', headers=recruiter(people.recruiter_id))
    assert rv.status_code == 200
    assert [t['id'] for t in rv.get_json()['templates']] == [template['id']]

    # invite, and a repeat of the same invite
    rv = _invite(client, people, template['id'])
    assert rv.status_code == 201
    interview = rv.get_json()['interview']
    assert interview['status'] == 'Sent'
    assert _invite(client, people, template['id']).status_code == 409

    # candidate starts twice and sees no rubric
    rv = client.get(f"{PREFIX}/student/start/{interview['id']}", headers=student(people.student_id))
    assert rv.status_code == 200
    started = rv.get_json()
    assert all('idealAnswer' not in q for q in started['questions'])
    rv = client.get(f"{PREFIX}/student/start/{interview['id']}", headers=student(people.student_id))
    assert rv.get_json()['timeStarted'] == started['timeStarted']

    answers = [
        {'questionId': started['questions'][0]['id'], 'answerText': 'Indexes and short transactions.'},
        {'questionId': started['questions'][1]['id'], 'answerText': 'Talk it through with the team.'},
        {'questionId': started['questions'][2]['id'], 'answerText': ''},
    ]
    rv = client.post(f"{PREFIX}/student/submit/{interview['id']}", json={'answers': answers},
                     headers=student(people.student_id))
    assert rv.status_code == 200
    assert rv.get_json()['interview']['status'] == 'Submitted'
    rv = client.post(f"{PREFIX}/student/submit/{interview['id']}", json={'answers': answers},
                     headers=student(people.student_id))
    assert rv.status_code == 409

    rv = client.get(f'{PREFIX}/recruiter/results', headers=recruiter(people.recruiter_id))
    assert [row['status'] for row in rv.get_json()['results']] == ['Submitted']

    # grading runs inline in tests, so the result is final on the next read
    rv = client.post(f"{PREFIX}/recruiter/results/{interview['id']}/grade", headers=recruiter(people.recruiter_id))
    assert rv.status_code == 202
    assert rv.get_json()['accepted'] is True

    rv = client.get(f"{PREFIX}/recruiter/results/{interview['id']}", headers=recruiter(people.recruiter_id))
    assert rv.status_code == 200
    detail = rv.get_json()
    assert detail['interview']['status'] == 'Graded'
    assert 0 <= detail['interview']['overallScore'] <= 100
    assert all(0 <= a['aiScore'] <= 100 for a in detail['answers'])
    assert detail['answers'][0]['idealAnswer']

    rv = client.post(f"{PREFIX}/recruiter/results/{interview['id']}/grade", headers=recruiter(people.recruiter_id))
    assert rv.status_code == 409


def test_identity_headers_are_required(client, people):
    rv = client.get(f'{PREFIX}/recruiter/templates')
    assert rv.status_code == 401
    assert 'error' in rv.get_json()

    rv = client.get(f'{PREFIX}/recruiter/templates', headers={'X-Actor-Id': 'abc', 'X-Actor-Role': 'recruiter'})
    assert rv.status_code == 401

    rv = client.get(f'{PREFIX}/recruiter/templates', headers=student(people.student_id))
    assert rv.status_code == 403

    rv = client.get(f'{PREFIX}/student/start/1', headers=recruiter(people.recruiter_id))
    assert rv.status_code == 403


@pytest.mark.parametrize('overrides, status', [
    ({'questionCount': 2}, 400),
    ({'questionCount': 21}, 400),
    ({'title': ''}, 400),
    ({'jobId': 'abc'}, 400),
    ({'jobId': 9999}, 404),
])
def test_create_template_validation(client, people, fake_llm, overrides, status):
    rv = _create_template(client, people, **overrides)
    assert rv.status_code == status
    assert 'error' in rv.get_json()


def test_create_template_for_foreign_job_is_forbidden(client, people, fake_llm):
    rv = _create_template(client, people, jobId=people.other_job_id)
    assert rv.status_code == 403


def test_provider_outage_maps_to_503(client, people, fake_llm):
    from errors import ExternalProviderError
    fake_llm.on('generate_interview_questions', ExternalProviderError('AI request failed: timeout'))

    rv = _create_template(client, people)
    assert rv.status_code == 503
    assert rv.get_json() == {'error': 'AI request failed: timeout'}


def test_unknown_interview_is_404(client, people):
    rv = client.get(f'{PREFIX}/recruiter/results/9999', headers=recruiter(people.recruiter_id))
    assert rv.status_code == 404
    rv = client.get(f'{PREFIX}/student/start/9999', headers=student(people.student_id))
    assert rv.status_code == 404


def test_submit_requires_json_object(client, people, fake_llm):
    template_id = _create_template(client, people).get_json()['template']['id']
    interview_id = _invite(client, people, template_id).get_json()['interview']['id']
    client.get(f'{PREFIX}/student/start/{interview_id}', headers=student(people.student_id))

    rv = client.post(f'{PREFIX}/student/submit/{interview_id}', data='nope',
                     content_type='text/plain', headers=student(people.student_id))
    assert rv.status_code == 400
    rv = client.post(f'{PREFIX}/student/submit/{interview_id}', json={'answers': 'all good'},
                     headers=student(people.student_id))
    assert rv.status_code == 400


def test_other_student_cannot_open_interview(client, people, fake_llm):
    template_id = _create_template(client, people).get_json()['template']['id']
    interview_id = _invite(client, people, template_id).get_json()['interview']['id']

    rv = client.get(f'{PREFIX}/student/start/{interview_id}', headers=student(people.other_student_id))
    assert rv.status_code == 403


def test_late_submit_answers_like_an_on_time_one(app, client, people, fake_llm):
    from datetime import timedelta

    from extensions import db
    from models import StudentInterview, utcnow

    template_id = _create_template(client, people).get_json()['template']['id']
    late_id = _invite(client, people, template_id).get_json()['interview']['id']
    on_time_id = client.post(f'{PREFIX}/recruiter/send', headers=recruiter(people.recruiter_id), json={
        'applicationId': people.second_application_id,
        'templateId': template_id,
    }).get_json()['interview']['id']

    def start_and_submit(student_id, interview_id, late=False):
        started = client.get(f'{PREFIX}/student/start/{interview_id}', headers=student(student_id)).get_json()
        if late:
            with app.app_context():
                db.session.execute(
                    db.update(StudentInterview)
                    .where(StudentInterview.id == interview_id)
                    .values(time_started=utcnow() - timedelta(hours=3))
                )
                db.session.commit()
        answers = [{'questionId': q['id'], 'answerText': 'An answer.'} for q in started['questions']]
        return client.post(f'{PREFIX}/student/submit/{interview_id}', json={'answers': answers},
                           headers=student(student_id))

    on_time = start_and_submit(people.other_student_id, on_time_id)
    late = start_and_submit(people.student_id, late_id, late=True)

    assert late.status_code == on_time.status_code == 200
    late_body, on_time_body = late.get_json(), on_time.get_json()
    assert late_body.keys() == on_time_body.keys()
    assert late_body['interview'].keys() == on_time_body['interview'].keys()
    assert late_body['interview']['status'] == on_time_body['interview']['status'] == 'Submitted'
    assert late_body.get('message') == on_time_body.get('message')
