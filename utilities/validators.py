from errors import ValidationError
from .constants import MAX_QUESTION_COUNT, MIN_QUESTION_COUNT


def parse_int(value, field: str) -> int:
    """Coerce a path/body value to int or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.")


def require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.")
    return value.strip()


def parse_question_count(value) -> int:
    count = parse_int(value, 'questionCount')
    if count < MIN_QUESTION_COUNT or count > MAX_QUESTION_COUNT:
        raise ValidationError(
            f"questionCount must be between {MIN_QUESTION_COUNT} and {MAX_QUESTION_COUNT}."
        )
    return count


def parse_focus_skills(value) -> list:
    """Accept "React, Redux" or ["React", "Redux"]; blanks are dropped."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(',')
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise ValidationError("focusSkills must be a comma separated string or a list.")
    return [str(s).strip() for s in items if str(s).strip()]


def parse_answers(value) -> list:
    """Normalize [{questionId, answerText}] into [(question_id, text)].

    A missing/None answerText is stored as an empty answer; any other
    non-string is rejected.
    """
    if not isinstance(value, list):
        raise ValidationError('"answers" must be a list.')
    parsed = []
    for item in value:
        if not isinstance(item, dict):
            raise ValidationError("Each answer must be an object with questionId and answerText.")
        question_id = parse_int(item.get('questionId'), 'questionId')
        text = item.get('answerText')
        if text is None:
            text = ''
        if not isinstance(text, str):
            raise ValidationError("answerText must be a string.")
        parsed.append((question_id, text))
    return parsed
