import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from errors import (
    DuplicateInvite, InvalidStateTransition, NotFoundError, PersistenceError, ValidationError,
)
from models import InterviewTemplate, JobApplication, StudentInterview, utcnow
from ownership import ensure_owns_job
from utilities.constants import APP_STATUS_INTERVIEW_SENT, INVITABLE_APP_STATUSES, STATUS_SENT

logger = logging.getLogger(__name__)


def send_invite(recruiter_id, application_id, template_id, message=None):
    """Invite an applicant to take one of the recruiter's templates.

    Creates the interview in `Sent` and flips the application to
    `Interview_Sent` in the same transaction.
    """
    logger.info("Recruiter %s inviting application %s with template %s",
                recruiter_id, application_id, template_id)
    application = db.session.get(JobApplication, application_id)
    if application is None:
        raise NotFoundError(f"Application {application_id} was not found.")
    template = db.session.get(InterviewTemplate, template_id)
    if template is None:
        raise NotFoundError(f"Interview template {template_id} was not found.")

    ensure_owns_job(recruiter_id, application.job_id,
                    message="You do not own the job for this application.")
    if template.owner_id != recruiter_id:
        raise ValidationError("The interview template does not belong to you.")
    if template.job_id != application.job_id:
        raise ValidationError("The interview template was created for a different job.")

    existing = db.session.execute(
        db.select(StudentInterview.id).where(
            StudentInterview.application_id == application_id,
            StudentInterview.template_id == template_id,
        )
    ).first()
    if existing is not None:
        raise DuplicateInvite(
            "This applicant has already been invited with this template.",
            interview_id=existing.id,
        )
    if application.status not in INVITABLE_APP_STATUSES:
        raise InvalidStateTransition(
            f"Cannot send an interview to an application with status '{application.status}'."
        )

    now = utcnow()
    interview = StudentInterview(
        application_id=application_id,
        template_id=template_id,
        status=STATUS_SENT,
        recruiter_message=message or None,
    )
    application.status = APP_STATUS_INTERVIEW_SENT
    application.status_changed_at = now
    application.changed_by_user_id = recruiter_id
    try:
        db.session.add(interview)
        db.session.commit()
    except IntegrityError as e:
        # Lost a race against a concurrent invite for the same pair.
        db.session.rollback()
        raise DuplicateInvite("This applicant has already been invited with this template.") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Saving invite for application %s failed", application_id)
        raise PersistenceError(f"Database error while sending the interview: {e}") from e

    logger.info("Interview %s sent for application %s", interview.id, application_id)
    return interview
