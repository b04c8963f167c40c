import logging

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from errors import MalformedProviderResponse, NotFoundError, PersistenceError
from models import InterviewQuestion, InterviewTemplate, Job
from ownership import ensure_owns_job
from utilities.constants import MIN_TIME_LIMIT_MINUTES, QUESTION_TYPES
from utilities.llm import generate_structured
from utilities.validators import parse_focus_skills, parse_question_count, require_text

logger = logging.getLogger(__name__)


def question_mix(question_count):
    """Split a question count into (technical, behavioral, situational), 60/20/rest."""
    technical = -(-question_count * 6 // 10)
    behavioral = question_count * 2 // 10
    situational = question_count - technical - behavioral
    return technical, behavioral, situational


def build_generation_prompt(job_title, job_description, focus_skills, question_count, difficulty):
    technical, behavioral, situational = question_mix(question_count)
    skills = ', '.join(focus_skills) if focus_skills else 'infer them from the job description'
    return f"""You are a senior technical hiring manager.
Write a set of exactly {question_count} interview questions for the position "{job_title}" (level: {difficulty}).

Job description for reference:
\"\"\"{job_description or 'A general position.'}\"\"\"

Skills the recruiter wants to focus on: {skills}.

Requirements:
1. Produce exactly {question_count} questions.
2. Mix: {technical} Technical, {behavioral} Behavioral and {situational} Situational questions.
3. Technical questions must revolve around the focus skills and the job description.
4. For EACH question provide:
   - "questionText": the question itself.
   - "idealAnswer": a detailed ideal answer used as the grading rubric. Name the key concepts and keywords a strong answer must cover.
   - "questionType": one of "Technical", "Behavioral", "Situational".
5. Estimate the total time needed as "timeLimitMinutes" (about 4-5 minutes per technical question, 3 per behavioral one).

Return ONLY one JSON object with this structure:
{{
  "timeLimitMinutes": 35,
  "questions": [
    {{"questionText": "...", "idealAnswer": "...", "questionType": "Technical"}}
  ]
}}"""


def validate_generated(result, question_count):
    """Check the generator output before anything touches the database."""
    time_limit = result.get('timeLimitMinutes')
    if isinstance(time_limit, bool) or not isinstance(time_limit, (int, float)) or time_limit < MIN_TIME_LIMIT_MINUTES:
        raise MalformedProviderResponse("AI response field 'timeLimitMinutes' is invalid.")
    questions = result.get('questions')
    if not isinstance(questions, list) or not questions:
        raise MalformedProviderResponse("AI response field 'questions' is missing or empty.")
    for q in questions:
        if not isinstance(q, dict) or not all(
            isinstance(q.get(k), str) and q.get(k).strip()
            for k in ('questionText', 'idealAnswer', 'questionType')
        ):
            raise MalformedProviderResponse("AI response contains a question with missing fields.")
        kind = q['questionType'].strip().capitalize()
        if kind not in QUESTION_TYPES:
            raise MalformedProviderResponse(f"AI response has an unknown questionType {q['questionType']!r}.")
        q['questionType'] = kind
    if len(questions) != question_count:
        raise MalformedProviderResponse(
            f"AI returned {len(questions)} questions, {question_count} were requested."
        )
    return int(round(time_limit)), questions


def create_template(owner_id, job_id, title, focus_skills, question_count, difficulty):
    """Draft a question set for a job with the AI generator and persist it.

    The AI call happens before any write: if it fails or returns garbage,
    nothing is stored. Header and questions are then written in one
    transaction, so a partially saved template is never visible.

    Returns the template dict with its questions (rubric included, for the
    recruiter's preview) and the job title.
    """
    title = require_text(title, 'title')
    difficulty = require_text(difficulty, 'difficulty')
    question_count = parse_question_count(question_count)
    skills = parse_focus_skills(focus_skills)
    logger.info("Creating template for job %s by recruiter %s", job_id, owner_id)

    job = db.session.get(Job, job_id)
    if job is None:
        raise NotFoundError(f"Job {job_id} was not found.", job_id=job_id)
    ensure_owns_job(owner_id, job_id, message="You do not own this job posting.")
    job_title, job_description = job.title, job.description
    # Nothing is held open while the provider thinks.
    db.session.rollback()

    prompt = build_generation_prompt(job_title, job_description, skills, question_count, difficulty)
    result = generate_structured(prompt, label='generate_interview_questions')
    time_limit, generated = validate_generated(result, question_count)
    logger.info("AI generated %d questions for job %s, saving", len(generated), job_id)

    template = InterviewTemplate(
        owner_id=owner_id,
        job_id=job_id,
        title=title,
        time_limit_minutes=time_limit,
        prompt_settings=f"Skills: {', '.join(skills) or 'auto'}, Count: {question_count}, Difficulty: {difficulty}",
    )
    try:
        db.session.add(template)
        db.session.flush()  # Use flush to get the ID for the new template
        db.session.add_all([
            InterviewQuestion(
                template_id=template.id,
                question_order=order,
                question_text=q['questionText'].strip(),
                ideal_answer=q['idealAnswer'].strip(),
                question_type=q['questionType'],
            )
            for order, q in enumerate(generated, start=1)
        ])
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Saving template for job %s failed", job_id)
        raise PersistenceError(f"Database error while saving the interview template: {e}") from e

    logger.info("Created template %s with %d questions", template.id, len(generated))
    data = template.to_dict(include_questions=True, include_rubric=True)
    data['jobTitle'] = job_title
    return data


def list_templates(owner_id):
    """The recruiter's templates, newest first, with job title and question count."""
    question_count = (
        db.select(db.func.count(InterviewQuestion.id))
        .where(InterviewQuestion.template_id == InterviewTemplate.id)
        .scalar_subquery()
    )
    rows = db.session.execute(
        db.select(InterviewTemplate, Job.title, question_count)
        .outerjoin(Job, InterviewTemplate.job_id == Job.id)
        .where(InterviewTemplate.owner_id == owner_id)
        .order_by(InterviewTemplate.created_at.desc(), InterviewTemplate.id.desc())
    ).all()
    templates = []
    for template, job_title, count in rows:
        data = template.to_dict()
        data['jobTitle'] = job_title
        data['questionCount'] = count
        templates.append(data)
    return templates
