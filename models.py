from datetime import datetime, timezone

from extensions import db
from errors import InvalidStateTransition
from utilities.constants import APP_STATUS_PENDING, STATUS_SENT, TRANSITIONS

# Note: The db instance is created in extensions.py
# and initialized in the app factory to avoid circular imports.


def utcnow():
    """Naive UTC timestamp, the way every column in this schema stores time."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


# --------------------------
# Collaborator tables (owned by the identity and jobs services)
# --------------------------
class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=True)

    def __repr__(self):
        return f'<User {self.id} {self.name}>'


class Job(db.Model):
    __tablename__ = 'jobs'

    id = db.Column(db.Integer, primary_key=True)
    recruiter_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f'<Job {self.id} {self.title!r}>'


class JobApplication(db.Model):
    __tablename__ = 'job_applications'

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey('jobs.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    status = db.Column(db.String(50), nullable=False, default=APP_STATUS_PENDING)
    status_changed_at = db.Column(db.DateTime, nullable=True)
    changed_by_user_id = db.Column(db.Integer, nullable=True)

    job = db.relationship('Job', backref='applications')
    student = db.relationship('User', foreign_keys=[student_id])

    def __repr__(self):
        return f'<JobApplication {self.id} job={self.job_id} status={self.status}>'


# --------------------------
# Interview pipeline
# --------------------------
class InterviewTemplate(db.Model):
    """AI-authored, recruiter-owned question set for one job. Read-only once created."""
    __tablename__ = 'interview_templates'

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey('jobs.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    time_limit_minutes = db.Column(db.Integer, nullable=False)
    prompt_settings = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    job = db.relationship('Job')
    questions = db.relationship(
        'InterviewQuestion', backref='template', lazy=True,
        order_by='InterviewQuestion.question_order',
    )

    def to_dict(self, include_questions=False, include_rubric=False):
        data = {
            'id': self.id,
            'title': self.title,
            'jobId': self.job_id,
            'timeLimitMinutes': self.time_limit_minutes,
            'promptSettings': self.prompt_settings,
            'createdAt': _iso(self.created_at),
        }
        if include_questions:
            data['questions'] = [q.to_dict(include_rubric=include_rubric) for q in self.questions]
        return data

    def __repr__(self):
        return f'<InterviewTemplate {self.id} {self.title!r}>'


class InterviewQuestion(db.Model):
    """One question of a template. `ideal_answer` is the grading rubric."""
    __tablename__ = 'interview_questions'
    __table_args__ = (
        db.UniqueConstraint('template_id', 'question_order', name='uq_question_template_order'),
    )

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(db.Integer, db.ForeignKey('interview_templates.id'), nullable=False, index=True)
    question_order = db.Column(db.Integer, nullable=False)
    question_text = db.Column(db.Text, nullable=False)
    ideal_answer = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.String(50), nullable=True)

    def to_dict(self, include_rubric=False):
        """Candidate view by default; the rubric is only added for the recruiter."""
        data = {
            'id': self.id,
            'questionOrder': self.question_order,
            'questionText': self.question_text,
            'questionType': self.question_type,
        }
        if include_rubric:
            data['idealAnswer'] = self.ideal_answer
        return data

    def __repr__(self):
        return f'<InterviewQuestion {self.id} #{self.question_order} of template {self.template_id}>'


class StudentInterview(db.Model):
    """One candidate's attempt at one template. `status` doubles as the grading mutex."""
    __tablename__ = 'student_interviews'
    __table_args__ = (
        db.UniqueConstraint('application_id', 'template_id', name='uq_student_interview_application_template'),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(db.Integer, db.ForeignKey('job_applications.id'), nullable=False, index=True)
    template_id = db.Column(db.Integer, db.ForeignKey('interview_templates.id'), nullable=False, index=True)
    status = db.Column(db.String(50), nullable=False, default=STATUS_SENT, index=True)
    recruiter_message = db.Column(db.Text, nullable=True)
    time_started = db.Column(db.DateTime, nullable=True)
    time_submitted = db.Column(db.DateTime, nullable=True)
    overall_score = db.Column(db.Integer, nullable=True)
    ai_overall_evaluation = db.Column(db.Text, nullable=True)
    # Set by the grading claim, cleared when that run leaves Grading
    grading_token = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    application = db.relationship('JobApplication')
    template = db.relationship('InterviewTemplate')
    answers = db.relationship('StudentAnswer', backref='student_interview', lazy=True)

    def transition_to(self, new_status):
        """Move along an allowed edge of the lifecycle or raise InvalidStateTransition."""
        if new_status not in TRANSITIONS.get(self.status, set()):
            raise InvalidStateTransition(
                f"Interview {self.id} cannot move from '{self.status}' to '{new_status}'.",
                interview_id=self.id,
            )
        self.status = new_status
        self.updated_at = utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'applicationId': self.application_id,
            'templateId': self.template_id,
            'status': self.status,
            'recruiterMessage': self.recruiter_message,
            'timeStarted': _iso(self.time_started),
            'timeSubmitted': _iso(self.time_submitted),
            'overallScore': self.overall_score,
            'aiOverallEvaluation': self.ai_overall_evaluation,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f'<StudentInterview {self.id} status={self.status}>'


class StudentAnswer(db.Model):
    """Created once at submission, then scored in place by the grading run."""
    __tablename__ = 'student_answers'
    __table_args__ = (
        db.UniqueConstraint('student_interview_id', 'question_id', name='uq_answer_interview_question'),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_interview_id = db.Column(db.Integer, db.ForeignKey('student_interviews.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('interview_questions.id'), nullable=False)
    answer_text = db.Column(db.Text, nullable=False, default='')
    ai_score = db.Column(db.Integer, nullable=True)
    ai_evaluation = db.Column(db.Text, nullable=True)

    question = db.relationship('InterviewQuestion')

    def __repr__(self):
        return f'<StudentAnswer {self.id} for Interview {self.student_interview_id}>'
