"""Grading orchestrator.

A recruiter's request claims a Submitted interview by flipping its status to
Grading with a conditional UPDATE that also stamps a fresh run token on the
row; status plus token is the mutex. The actual AI work runs detached on a
`GradingRunner` and writes every per-question score as soon as it has it,
but only while the row still carries its token. A failed run puts the
interview back to Submitted with a note so the recruiter can retry.

While a run is alive it keeps a Redis lease (`grading:lease:<id>`, value =
run token) fresh. `recover_stalled_grading()` releases interviews whose lease
expired, which is what happens when the process dies mid-run. A run that was
released this way and wakes up later finds a different token and stops.
"""
import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor

import redis
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from errors import (
    ExternalProviderError, GradingError, InterviewError, InvalidStateTransition, NotFoundError,
    PersistenceError,
)
from models import InterviewQuestion, StudentAnswer, StudentInterview, utcnow
from ownership import ensure_owns_job
from scorecard import evaluate_answer, grade_overall
from utilities.constants import (
    GRADING_LEASE_KEY, STATUS_GRADED, STATUS_GRADING, STATUS_SUBMITTED, TRANSITIONS,
)
from utilities.llm import RetryPolicy

logger = logging.getLogger(__name__)

FAILURE_NOTE = "AI grading failed ({reason}). Please retry."
INTERRUPTED_REASON = "grading was interrupted"

# One HTTP attempt per grading attempt; GRADING_RETRIES is the only retry budget.
SINGLE_ATTEMPT = RetryPolicy(retries=1)


class GradingRunner:
    """Runs grading jobs off the request path and hands back a Future.

    mode='thread' uses a small thread pool; mode='inline' runs the job before
    `submit` returns, which keeps tests deterministic.
    """

    def __init__(self, mode='thread', max_workers=2):
        if mode not in ('thread', 'inline'):
            raise ValueError(f"Unknown grading executor {mode!r}; expected 'thread' or 'inline'.")
        self.mode = mode
        self._executor = None
        if mode == 'thread':
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='grading')

    def submit(self, fn, *args, **kwargs) -> Future:
        if self._executor is not None:
            return self._executor.submit(fn, *args, **kwargs)
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


class GradingLease:
    """Redis key with a TTL that names the run grading an interview.

    The value is the run token. Only the holder may extend or delete the key,
    so a stale run cannot drop the lease of the run that replaced it.
    Lease operations are best effort: with no Redis, or when Redis errors,
    grading carries on and only the crash recovery sweep loses its signal.
    """

    def __init__(self, r, interview_id, ttl, token):
        self.r = r
        self.key = GRADING_LEASE_KEY.format(interview_id=interview_id)
        self.ttl = ttl
        self.token = token

    def acquire(self) -> bool:
        """Take the lease only if nobody holds it."""
        if self.r is None:
            return False
        try:
            return bool(self.r.set(self.key, self.token, ex=self.ttl, nx=True))
        except redis.exceptions.RedisError as e:
            logger.warning("Grading lease acquire on %s failed: %s", self.key, e)
            return False

    def refresh(self) -> bool:
        """Extend our lease; take it again if it lapsed and nobody else has it."""
        if self._if_holder(lambda pipe: pipe.expire(self.key, self.ttl)):
            return True
        return self.acquire()

    def release(self) -> bool:
        return self._if_holder(lambda pipe: pipe.delete(self.key))

    def _if_holder(self, apply):
        """Run `apply` in a WATCH/MULTI transaction if the key still holds our token."""
        if self.r is None:
            return False
        try:
            with self.r.pipeline() as pipe:
                pipe.watch(self.key)
                if pipe.get(self.key) != self.token:
                    return False
                pipe.multi()
                apply(pipe)
                pipe.execute()
                return True
        except redis.exceptions.WatchError:
            return False
        except redis.exceptions.RedisError as e:
            logger.warning("Grading lease update on %s failed: %s", self.key, e)
            return False


def _redis():
    return current_app.extensions.get('redis')


def _lease_for(interview_id, token):
    return GradingLease(_redis(), interview_id, current_app.config['GRADING_LEASE_SECONDS'], token)


def claim_for_grading(interview_id, session=None):
    """Compare-and-swap Submitted -> Grading.

    Returns the new run token for the caller that won, None for everyone else.
    """
    session = session or db.session
    token = uuid.uuid4().hex
    result = session.execute(
        db.update(StudentInterview)
        .where(StudentInterview.id == interview_id, StudentInterview.status == STATUS_SUBMITTED)
        .values(status=STATUS_GRADING, grading_token=token, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return token if result.rowcount == 1 else None


def _owns_run(interview_id, token) -> bool:
    found = db.session.execute(
        db.select(StudentInterview.id).where(
            StudentInterview.id == interview_id,
            StudentInterview.status == STATUS_GRADING,
            StudentInterview.grading_token == token,
        )
    ).first()
    return found is not None


def _close_run(interview_id, token, new_status, **values) -> bool:
    """Leave Grading for `new_status` if the row still belongs to `token`."""
    if new_status not in TRANSITIONS[STATUS_GRADING]:
        raise InvalidStateTransition(f"Grading cannot end in '{new_status}'.")
    if token is None:
        holder = StudentInterview.grading_token.is_(None)
    else:
        holder = StudentInterview.grading_token == token
    result = db.session.execute(
        db.update(StudentInterview)
        .where(StudentInterview.id == interview_id, StudentInterview.status == STATUS_GRADING, holder)
        .values(status=new_status, grading_token=None, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def dispatch_grading(interview_id, token) -> Future:
    """Hand a claimed interview to the grading runner."""
    app = current_app._get_current_object()
    runner = app.extensions['grading_runner']
    return runner.submit(run_grading, app, interview_id, token)


def request_grading(recruiter_id, interview_id):
    """Claim a Submitted interview and start grading it in the background."""
    logger.info("Recruiter %s requested grading of interview %s", recruiter_id, interview_id)
    interview = db.session.get(StudentInterview, interview_id)
    if interview is None:
        raise NotFoundError(f"Interview {interview_id} was not found.")
    ensure_owns_job(recruiter_id, interview.application.job_id,
                    message="You do not own the job for this interview.")
    if interview.status != STATUS_SUBMITTED:
        raise InvalidStateTransition(
            f"Only submitted interviews can be graded (current status: '{interview.status}')."
        )

    try:
        token = claim_for_grading(interview_id)
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Database error while claiming the interview: {e}") from e
    if token is None:
        raise InvalidStateTransition("Grading is already in progress for this interview.")

    # Held from the claim on, so a queued run is not mistaken for a dead one.
    if not _lease_for(interview_id, token).acquire():
        logger.warning("Grading lease for interview %s not taken at claim time", interview_id)
    dispatch_grading(interview_id, token)
    return {
        'accepted': True,
        'interviewId': interview_id,
        'message': 'AI grading started. Refresh the results in a minute.',
    }


def run_grading(app, interview_id, token):
    """Detached grading run. Never raises; failures end up on the interview row."""
    with app.app_context():
        try:
            if not _owns_run(interview_id, token):
                logger.warning("Interview %s is no longer claimed by run %s, skipping", interview_id, token)
                return
            lease = _lease_for(interview_id, token)
            lease.refresh()
            try:
                _grade(interview_id, token, lease)
            except Exception as e:
                reason = e.message if isinstance(e, InterviewError) else f"{type(e).__name__}: {e}"
                logger.exception("Grading interview %s failed: %s", interview_id, reason)
                _mark_failed(interview_id, token, reason)
            finally:
                lease.release()
        finally:
            db.session.remove()


def _grade(interview_id, token, lease):
    interview = db.session.get(StudentInterview, interview_id)
    job_title = interview.application.job.title
    rows = db.session.execute(
        db.select(StudentAnswer, InterviewQuestion)
        .join(InterviewQuestion, StudentAnswer.question_id == InterviewQuestion.id)
        .where(StudentAnswer.student_interview_id == interview_id)
        .order_by(InterviewQuestion.question_order)
    ).all()
    if not rows:
        raise GradingError("no answers were submitted")

    logger.info("Grading interview %s: %d answers", interview_id, len(rows))
    policy = RetryPolicy(retries=current_app.config['GRADING_RETRIES'])
    graded = []
    for answer, question in rows:
        result = policy.run(
            evaluate_answer, question.question_text, question.ideal_answer, answer.answer_text,
            policy=SINGLE_ATTEMPT,
            retry_on=(ExternalProviderError,), label=f"grade question {question.question_order}",
        )
        if not _owns_run(interview_id, token):
            logger.warning("Interview %s was taken from run %s, abandoning", interview_id, token)
            return
        answer.ai_score = result['score']
        answer.ai_evaluation = result['evaluation']
        db.session.commit()
        lease.refresh()
        graded.append({'question_text': question.question_text, 'answer_text': answer.answer_text, **result})

    overall = policy.run(grade_overall, job_title, graded, policy=SINGLE_ATTEMPT,
                         retry_on=(ExternalProviderError,), label='overall evaluation')

    if not _close_run(interview_id, token, STATUS_GRADED,
                      overall_score=overall['overallScore'],
                      ai_overall_evaluation=overall['aiOverallEvaluation']):
        logger.warning("Interview %s was taken from run %s before it finished", interview_id, token)
        return
    logger.info("Interview %s graded: %s/100", interview_id, overall['overallScore'])


def _mark_failed(interview_id, token, reason):
    db.session.rollback()
    try:
        _close_run(interview_id, token, STATUS_SUBMITTED,
                   ai_overall_evaluation=FAILURE_NOTE.format(reason=reason))
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Could not release interview %s after a failed grading run", interview_id)


def recover_stalled_grading():
    """Put interviews stuck in Grading without a live lease back to Submitted.

    Needs an app context. Returns the ids that were released; does nothing
    when Redis is not available, since a missing lease proves nothing then.
    """
    r = _redis()
    if r is None:
        logger.info("Redis unavailable, skipping stalled grading recovery")
        return []

    stuck = db.session.execute(
        db.select(StudentInterview.id, StudentInterview.grading_token)
        .where(StudentInterview.status == STATUS_GRADING)
    ).all()
    released = []
    for interview_id, token in stuck:
        try:
            alive = r.exists(GRADING_LEASE_KEY.format(interview_id=interview_id))
        except redis.exceptions.RedisError as e:
            logger.warning("Lease lookup failed, stopping recovery: %s", e)
            break
        if alive:
            continue
        if _close_run(interview_id, token, STATUS_SUBMITTED,
                      ai_overall_evaluation=FAILURE_NOTE.format(reason=INTERRUPTED_REASON)):
            released.append(interview_id)
    if released:
        logger.warning("Released %d stalled grading runs: %s", len(released), released)
    return released
