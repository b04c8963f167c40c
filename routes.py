from flask import Blueprint, g, jsonify, request

from auth import require_actor
from errors import ValidationError
from grading import request_grading
from interview_logic import start_interview, submit_interview
from invitations import send_invite
from results import get_result_detail, list_results
from template_generator import create_template, list_templates
from utilities.constants import ROLE_RECRUITER, ROLE_STUDENT
from utilities.validators import parse_int

# Create a Flask Blueprint to organize routes
main_bp = Blueprint('main', __name__, url_prefix='/api/interviews')

# Store connection objects from the app factory
r = None
db = None


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


# === Recruiter endpoints ===

@main_bp.route('/recruiter/templates', methods=['POST'])
@require_actor(ROLE_RECRUITER)
def create_template_route():
    """Generates a question set with the AI and saves it as a template.

    Expects 'jobId', 'title', 'questionCount', 'difficulty' and optional 'focusSkills'.
    """
    data = _json_body()
    template = create_template(
        owner_id=g.actor_id,
        job_id=parse_int(data.get('jobId'), 'jobId'),
        title=data.get('title'),
        focus_skills=data.get('focusSkills'),
        question_count=data.get('questionCount'),
        difficulty=data.get('difficulty'),
    )
    return jsonify({'message': 'Interview template created successfully.', 'template': template}), 201


@main_bp.route('/recruiter/templates', methods=['GET'])
@require_actor(ROLE_RECRUITER)
def list_templates_route():
    return jsonify({'templates': list_templates(g.actor_id)})


@main_bp.route('/recruiter/send', methods=['POST'])
@require_actor(ROLE_RECRUITER)
def send_invite_route():
    """Invites an applicant; expects 'applicationId', 'templateId' and optional 'message'."""
    data = _json_body()
    interview = send_invite(
        recruiter_id=g.actor_id,
        application_id=parse_int(data.get('applicationId'), 'applicationId'),
        template_id=parse_int(data.get('templateId'), 'templateId'),
        message=data.get('message'),
    )
    return jsonify({'message': 'Interview sent to the candidate.', 'interview': interview.to_dict()}), 201


@main_bp.route('/recruiter/results', methods=['GET'])
@require_actor(ROLE_RECRUITER)
def list_results_route():
    return jsonify({'results': list_results(g.actor_id)})


@main_bp.route('/recruiter/results/<interview_id>/grade', methods=['POST'])
@require_actor(ROLE_RECRUITER)
def request_grading_route(interview_id):
    """Queues AI grading; the client polls the result detail for the outcome."""
    return jsonify(request_grading(g.actor_id, parse_int(interview_id, 'interviewId'))), 202


@main_bp.route('/recruiter/results/<interview_id>', methods=['GET'])
@require_actor(ROLE_RECRUITER)
def result_detail_route(interview_id):
    return jsonify(get_result_detail(g.actor_id, parse_int(interview_id, 'interviewId')))


# === Candidate endpoints ===

@main_bp.route('/student/start/<interview_id>', methods=['GET'])
@require_actor(ROLE_STUDENT)
def start_interview_route(interview_id):
    return jsonify(start_interview(g.actor_id, parse_int(interview_id, 'interviewId')))


@main_bp.route('/student/submit/<interview_id>', methods=['POST'])
@require_actor(ROLE_STUDENT)
def submit_interview_route(interview_id):
    """Expects 'answers': [{questionId, answerText}]."""
    data = _json_body()
    interview = submit_interview(g.actor_id, parse_int(interview_id, 'interviewId'), data.get('answers'))
    return jsonify({'message': 'Interview submitted successfully.', 'interview': interview.to_dict()})


@main_bp.route('/health', methods=['GET'])
def health():
    db.session.execute(db.text('SELECT 1'))
    return jsonify({'status': 'ok', 'database': True, 'redis': r is not None})


def init_app(app, redis_conn, db_conn):
    """Keeps the connection objects from the app factory and registers the blueprint."""
    global r, db
    r = redis_conn
    db = db_conn
    app.register_blueprint(main_bp)
