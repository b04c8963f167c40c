import os
import re
import sys
from types import SimpleNamespace

import fakeredis
import pytest

# Ensure repo root is on sys.path so tests can import top-level modules (e.g., grading.py)
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Ensure env for create_app
os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('REDIS_URL', 'redis://localhost:6379/0')

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite:///:memory:',
    'TESTING': True,
    'GRADING_EXECUTOR': 'inline',
    'GRADING_RETRIES': 1,
}


@pytest.fixture(scope='session')
def fake_redis_server():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(monkeypatch, fake_redis_server):
    import redis
    fake_redis_server.flushall()
    monkeypatch.setattr(redis, 'from_url', lambda *args, **kwargs: fake_redis_server)
    yield


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    # Retry loops must never really sleep in tests
    import utilities.llm as llm
    monkeypatch.setattr(llm.time, 'sleep', lambda s: None)
    yield


@pytest.fixture()
def app():
    from app import create_app
    application = create_app(dict(TEST_CONFIG))
    yield application
    application.extensions['grading_runner'].shutdown()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def app_ctx(app):
    with app.app_context():
        yield app


class FakeLLM:
    """Stands in for `generate_structured`; answers per call label.

    A handler is either a dict returned as-is, an exception instance that is
    raised, or a callable taking the prompt.
    """

    def __init__(self):
        self.calls = []
        self.handlers = {
            'generate_interview_questions': self._questions,
            'evaluate_answer': {'score': 80, 'evaluation': 'Covers the key points.'},
            'evaluate_overall': {'overallScore': 78, 'aiOverallEvaluation': 'Solid candidate overall.'},
        }

    def on(self, label, handler):
        self.handlers[label] = handler

    def labels(self):
        return [label for label, _ in self.calls]

    def __call__(self, prompt, label='generate_structured', policy=None):
        self.calls.append((label, prompt))
        handler = self.handlers[label]
        result = handler(prompt) if callable(handler) else handler
        if isinstance(result, Exception):
            raise result
        return result

    @staticmethod
    def _questions(prompt):
        count = int(re.search(r'exactly (\d+) interview questions', prompt).group(1))
        kinds = ['Technical', 'Behavioral', 'Situational']
        return {
            'timeLimitMinutes': 4 * count,
            'questions': [
                {
                    'questionText': f'Question {i}?',
                    'idealAnswer': f'Ideal answer {i} mentions indexes and transactions.',
                    'questionType': kinds[i % 3],
                }
                for i in range(1, count + 1)
            ],
        }


@pytest.fixture()
def fake_llm(monkeypatch):
    import scorecard
    import template_generator
    fake = FakeLLM()
    monkeypatch.setattr(template_generator, 'generate_structured', fake)
    monkeypatch.setattr(scorecard, 'generate_structured', fake)
    yield fake


def seed_people():
    """Two recruiters with one job each and two students applying to the first job."""
    from extensions import db
    from models import Job, JobApplication, User

    recruiter = User(name='Rita Recruiter', email='rita@example.com')
    other_recruiter = User(name='Omar Other', email='omar@example.com')
    student = User(name='Sam Student', email='sam@example.com')
    other_student = User(name='Olga Other', email='olga@example.com')
    db.session.add_all([recruiter, other_recruiter, student, other_student])
    db.session.flush()

    job = Job(recruiter_id=recruiter.id, title='Backend Engineer', description='Python, SQL and APIs.')
    other_job = Job(recruiter_id=other_recruiter.id, title='Data Analyst', description='SQL and dashboards.')
    db.session.add_all([job, other_job])
    db.session.flush()

    application = JobApplication(job_id=job.id, student_id=student.id)
    second_application = JobApplication(job_id=job.id, student_id=other_student.id)
    db.session.add_all([application, second_application])
    db.session.commit()

    return SimpleNamespace(
        recruiter_id=recruiter.id,
        other_recruiter_id=other_recruiter.id,
        student_id=student.id,
        other_student_id=other_student.id,
        job_id=job.id,
        other_job_id=other_job.id,
        application_id=application.id,
        second_application_id=second_application.id,
    )


@pytest.fixture()
def seed(app_ctx):
    return seed_people()


@pytest.fixture()
def make_people():
    """For tests that build their own app; call inside its app context."""
    return seed_people


@pytest.fixture()
def people(app):
    # Seeded in a context of its own so HTTP tests start from a clean session
    with app.app_context():
        return seed_people()


@pytest.fixture()
def template_id(seed, fake_llm):
    from template_generator import create_template
    template = create_template(seed.recruiter_id, seed.job_id, 'Backend screen', 'Python, SQL', 3, 'Mid')
    return template['id']


@pytest.fixture()
def interview_id(seed, template_id):
    from invitations import send_invite
    return send_invite(seed.recruiter_id, seed.application_id, template_id, 'Good luck!').id


@pytest.fixture()
def question_ids(template_id):
    from extensions import db
    from models import InterviewQuestion
    return list(db.session.execute(
        db.select(InterviewQuestion.id)
        .where(InterviewQuestion.template_id == template_id)
        .order_by(InterviewQuestion.question_order)
    ).scalars())


@pytest.fixture()
def submitted_interview_id(seed, interview_id, question_ids):
    from interview_logic import start_interview, submit_interview
    start_interview(seed.student_id, interview_id)
    submit_interview(seed.student_id, interview_id, [
        {'questionId': question_ids[0], 'answerText': 'Use indexes and keep transactions short.'},
        {'questionId': question_ids[1], 'answerText': 'I would talk to the team first.'},
        {'questionId': question_ids[2], 'answerText': ''},
    ])
    return interview_id


@pytest.fixture()
def fresh(app_ctx):
    """Fetch a fresh copy of a row, dropping anything cached in the session."""
    from extensions import db

    def _fresh(model, pk):
        db.session.expire_all()
        return db.session.get(model, pk)
    return _fresh
