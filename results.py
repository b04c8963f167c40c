import logging

from sqlalchemy.orm import aliased

from extensions import db
from errors import NotFoundError
from models import (
    InterviewQuestion, InterviewTemplate, Job, JobApplication, StudentAnswer, StudentInterview, User,
)
from ownership import ensure_owns_job
from utilities.constants import RESULT_STATUSES

logger = logging.getLogger(__name__)


def _iso(value):
    return value.isoformat() if value else None


def list_results(recruiter_id):
    """Finished interviews across the recruiter's jobs, grouped by status, freshest first."""
    student = aliased(User)
    rows = db.session.execute(
        db.select(StudentInterview, student.name, Job.title, InterviewTemplate.title)
        .join(JobApplication, StudentInterview.application_id == JobApplication.id)
        .join(Job, JobApplication.job_id == Job.id)
        .join(student, JobApplication.student_id == student.id)
        .join(InterviewTemplate, StudentInterview.template_id == InterviewTemplate.id)
        .where(Job.recruiter_id == recruiter_id, StudentInterview.status.in_(RESULT_STATUSES))
        .order_by(StudentInterview.status.asc(), StudentInterview.updated_at.desc())
    ).all()
    logger.info("Recruiter %s has %d interview results", recruiter_id, len(rows))
    return [
        {
            'id': interview.id,
            'status': interview.status,
            'overallScore': interview.overall_score,
            'timeSubmitted': _iso(interview.time_submitted),
            'updatedAt': _iso(interview.updated_at),
            'studentName': student_name,
            'jobTitle': job_title,
            'templateTitle': template_title,
        }
        for interview, student_name, job_title, template_title in rows
    ]


def get_result_detail(recruiter_id, interview_id):
    """One interview with every answer next to its question and rubric."""
    interview = db.session.get(StudentInterview, interview_id)
    if interview is None:
        raise NotFoundError(f"Interview {interview_id} was not found.")
    application = interview.application
    ensure_owns_job(recruiter_id, application.job_id,
                    message="You do not have access to this result.")

    rows = db.session.execute(
        db.select(StudentAnswer, InterviewQuestion)
        .join(InterviewQuestion, StudentAnswer.question_id == InterviewQuestion.id)
        .where(StudentAnswer.student_interview_id == interview_id)
        .order_by(InterviewQuestion.question_order)
    ).all()

    summary = interview.to_dict()
    summary['studentName'] = application.student.name if application.student else None
    summary['jobTitle'] = application.job.title
    summary['templateTitle'] = interview.template.title
    answers = [
        {
            'id': answer.id,
            'questionId': question.id,
            'questionOrder': question.question_order,
            'questionText': question.question_text,
            'questionType': question.question_type,
            'idealAnswer': question.ideal_answer,
            'answerText': answer.answer_text,
            'aiScore': answer.ai_score,
            'aiEvaluation': answer.ai_evaluation,
        }
        for answer, question in rows
    ]
    return {'interview': summary, 'answers': answers}
