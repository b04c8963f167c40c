import pytest

from errors import ValidationError
from utilities.validators import parse_answers, parse_focus_skills, parse_int, parse_question_count


@pytest.mark.parametrize('value', [3, '20', 10])
def test_question_count_in_range(value):
    assert parse_question_count(value) == int(value)


@pytest.mark.parametrize('value', [2, 21, 'ten', None, True])
def test_question_count_rejected(value):
    with pytest.raises(ValidationError):
        parse_question_count(value)


def test_parse_int_rejects_bool():
    with pytest.raises(ValidationError, match='jobId'):
        parse_int(False, 'jobId')


def test_focus_skills_accepts_string_or_list():
    assert parse_focus_skills('React, Redux ,, Node') == ['React', 'Redux', 'Node']
    assert parse_focus_skills(['SQL', ' ']) == ['SQL']
    assert parse_focus_skills(None) == []


def test_parse_answers_keeps_blank_and_none_as_empty():
    parsed = parse_answers([
        {'questionId': 1, 'answerText': 'text'},
        {'questionId': '2', 'answerText': ''},
        {'questionId': 3, 'answerText': None},
    ])
    assert parsed == [(1, 'text'), (2, ''), (3, '')]


@pytest.mark.parametrize('answers', [
    None,
    {'questionId': 1},
    ['just a string'],
    [{'questionId': 1, 'answerText': 42}],
    [{'answerText': 'no id'}],
])
def test_parse_answers_rejects_bad_shapes(answers):
    with pytest.raises(ValidationError):
        parse_answers(answers)
