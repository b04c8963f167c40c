"""Ownership guard shared by every mutating interview operation.

Each check can run inside a transaction that is already open (pass its
session) or standalone, in which case the request-scoped `db.session` is used.
"""
import logging

from extensions import db
from errors import AuthorizationError
from models import Job, JobApplication

logger = logging.getLogger(__name__)


def owns_job(actor_id, job_id, session=None) -> bool:
    """True when `actor_id` is the recruiter who posted `job_id`."""
    session = session or db.session
    found = session.execute(
        db.select(Job.id).where(Job.id == job_id, Job.recruiter_id == actor_id)
    ).first()
    return found is not None


def owns_application(student_id, application_id, session=None) -> bool:
    """True when `student_id` is the candidate behind `application_id`."""
    session = session or db.session
    found = session.execute(
        db.select(JobApplication.id).where(
            JobApplication.id == application_id, JobApplication.student_id == student_id
        )
    ).first()
    return found is not None


def ensure_owns_job(actor_id, job_id, session=None, message=None):
    if not owns_job(actor_id, job_id, session=session):
        logger.warning("Actor %s denied on job %s", actor_id, job_id)
        raise AuthorizationError(
            message or "You do not own the job posting behind this request.",
            actor_id=actor_id, job_id=job_id,
        )


def ensure_owns_application(student_id, application_id, session=None, message=None):
    if not owns_application(student_id, application_id, session=session):
        logger.warning("Student %s denied on application %s", student_id, application_id)
        raise AuthorizationError(
            message or "You do not have access to this interview.",
            student_id=student_id, application_id=application_id,
        )
