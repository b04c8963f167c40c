# Session controller: the candidate's side of a StudentInterview.
import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from errors import (
    AlreadySubmitted, InvalidStateTransition, NotFoundError, PersistenceError, ValidationError,
)
from models import InterviewQuestion, StudentAnswer, StudentInterview, utcnow
from ownership import ensure_owns_application
from utilities.constants import FINISHED_STATUSES, STATUS_SENT, STATUS_STARTED, STATUS_SUBMITTED
from utilities.validators import parse_answers

logger = logging.getLogger(__name__)


def _load_for_student(student_id, interview_id):
    interview = db.session.get(StudentInterview, interview_id)
    if interview is None:
        raise NotFoundError(f"Interview {interview_id} was not found.")
    ensure_owns_application(student_id, interview.application_id)
    return interview


def start_interview(student_id, interview_id):
    """Open (or resume) the interview and hand out its questions without rubrics.

    The first call moves Sent -> Started and stamps `time_started`; later calls
    while still Started return the same payload with the original start time.
    """
    logger.info("Student %s starting interview %s", student_id, interview_id)
    interview = _load_for_student(student_id, interview_id)
    if interview.status in FINISHED_STATUSES:
        raise AlreadySubmitted("You have already submitted this interview.")

    if interview.status == STATUS_SENT:
        interview.transition_to(STATUS_STARTED)
        interview.time_started = utcnow()
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Database error while starting the interview: {e}") from e
        logger.info("Interview %s started at %s", interview.id, interview.time_started)
    else:
        logger.info("Interview %s resumed, started at %s", interview.id, interview.time_started)

    template = interview.template
    return {
        'interviewId': interview.id,
        'title': template.title,
        'timeLimitMinutes': template.time_limit_minutes,
        'timeStarted': interview.time_started.isoformat(),
        'questions': [q.to_dict() for q in template.questions],
    }


def submit_interview(student_id, interview_id, answers):
    """Store the candidate's answers and close the interview for grading.

    Past the time limit the submission is still accepted; it is only logged.
    """
    logger.info("Student %s submitting interview %s", student_id, interview_id)
    parsed = parse_answers(answers)
    interview = _load_for_student(student_id, interview_id)
    if interview.status in FINISHED_STATUSES:
        raise AlreadySubmitted("You have already submitted this interview.")
    if interview.status != STATUS_STARTED:
        raise InvalidStateTransition("The interview has not been started yet.")

    question_ids = set(db.session.execute(
        db.select(InterviewQuestion.id).where(InterviewQuestion.template_id == interview.template_id)
    ).scalars())
    seen = set()
    for question_id, _ in parsed:
        if question_id not in question_ids:
            raise ValidationError(f"Question {question_id} is not part of this interview.")
        if question_id in seen:
            raise ValidationError(f"Question {question_id} was answered more than once.")
        seen.add(question_id)

    now = utcnow()
    deadline = interview.time_started + timedelta(minutes=interview.template.time_limit_minutes)
    if now > deadline:
        logger.warning("Interview %s submitted %s after its time limit",
                       interview.id, now - deadline)

    interview.transition_to(STATUS_SUBMITTED)
    interview.time_submitted = now
    try:
        db.session.add_all([
            StudentAnswer(student_interview_id=interview.id, question_id=question_id, answer_text=text)
            for question_id, text in parsed
        ])
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Saving answers for interview %s failed", interview_id)
        raise PersistenceError(f"Database error while submitting the interview: {e}") from e

    logger.info("Interview %s submitted with %d answers", interview.id, len(parsed))
    return interview
