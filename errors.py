import logging
from flask import jsonify

logger = logging.getLogger(__name__)


class InterviewError(Exception):
    """Base class for failures surfaced to the API caller."""
    status_code = 500

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self):
        return {'error': self.message}


class ValidationError(InterviewError):
    status_code = 400


class AuthenticationError(InterviewError):
    status_code = 401


class AuthorizationError(InterviewError):
    status_code = 403


class NotFoundError(InterviewError):
    status_code = 404


class InvalidStateTransition(InterviewError):
    """Wrong status for the requested action (includes grading already in flight)."""
    status_code = 409


class DuplicateInvite(InvalidStateTransition):
    pass


class AlreadySubmitted(InvalidStateTransition):
    pass


class ExternalProviderError(InterviewError):
    """The AI provider failed, timed out or was rate limited past the retry budget."""
    status_code = 503


class MalformedProviderResponse(ExternalProviderError):
    """The AI provider answered, but not with the structure we asked for."""


class PersistenceError(InterviewError):
    status_code = 500


class GradingError(InterviewError):
    """A background grading run could not finish; recorded on the interview, never raised to a caller."""
    status_code = 500


def register_error_handlers(app):
    """Map the error taxonomy onto JSON responses: {"error": message}."""

    @app.errorhandler(InterviewError)
    def handle_interview_error(err):
        if err.status_code >= 500:
            logger.error("%s: %s %s", type(err).__name__, err.message, err.context or '')
        else:
            logger.info("Rejected request (%s): %s", type(err).__name__, err.message)
        return jsonify(err.to_dict()), err.status_code
