# Lifecycle of a StudentInterview
STATUS_SENT = 'Sent'
STATUS_STARTED = 'Started'
STATUS_SUBMITTED = 'Submitted'
STATUS_GRADING = 'Grading'
STATUS_GRADED = 'Graded'

INTERVIEW_STATUSES = [
    STATUS_SENT, STATUS_STARTED, STATUS_SUBMITTED, STATUS_GRADING, STATUS_GRADED
]

# Allowed edges. Grading -> Submitted is the only backward one (failed grading run).
TRANSITIONS = {
    STATUS_SENT: {STATUS_STARTED},
    STATUS_STARTED: {STATUS_SUBMITTED},
    STATUS_SUBMITTED: {STATUS_GRADING},
    STATUS_GRADING: {STATUS_GRADED, STATUS_SUBMITTED},
    STATUS_GRADED: set(),
}

# Candidate can no longer touch the interview once it is in one of these
FINISHED_STATUSES = {STATUS_SUBMITTED, STATUS_GRADING, STATUS_GRADED}
RESULT_STATUSES = [STATUS_SUBMITTED, STATUS_GRADING, STATUS_GRADED]

# JobApplication statuses owned by the jobs module
APP_STATUS_PENDING = 'Pending'
APP_STATUS_REVIEWED = 'Reviewed'
APP_STATUS_INTERVIEW_SENT = 'Interview_Sent'
INVITABLE_APP_STATUSES = {APP_STATUS_PENDING, APP_STATUS_REVIEWED}

# Template generation limits
MIN_QUESTION_COUNT = 3
MAX_QUESTION_COUNT = 20
MIN_TIME_LIMIT_MINUTES = 5
QUESTION_TYPES = ['Technical', 'Behavioral', 'Situational']

# Grading
MAX_ANSWER_LENGTH = 5000
MIN_SCORE = 0
MAX_SCORE = 100
BLANK_ANSWER_EVALUATION = 'The candidate did not answer this question.'
GRADING_LEASE_KEY = 'grading:lease:{interview_id}'

# Actor roles forwarded by the identity gateway
ROLE_RECRUITER = 'recruiter'
ROLE_STUDENT = 'student'
