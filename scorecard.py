import logging
import math

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from errors import MalformedProviderResponse
from utilities.constants import BLANK_ANSWER_EVALUATION, MAX_ANSWER_LENGTH, MAX_SCORE, MIN_SCORE
from utilities.llm import generate_structured

logger = logging.getLogger(__name__)


def calculate_similarity(text1, text2):
    """Calculates the TF-IDF cosine similarity between two texts (0.0 - 1.0)."""
    if not text1 or not text2 or not text1.strip() or not text2.strip():
        return 0.0

    try:
        vectors = TfidfVectorizer().fit_transform([text1, text2]).toarray()
    except ValueError as e:
        # Empty vocabulary, e.g. only stop words or punctuation
        logger.debug("Similarity skipped: %s", e)
        return 0.0
    # The result is a matrix, we need the value from the off-diagonal
    return float(cosine_similarity(vectors)[0][1])


def clamp_score(value):
    """Round a provider score into MIN_SCORE..MAX_SCORE, rejecting non-numbers."""
    if isinstance(value, bool):
        raise MalformedProviderResponse(f"AI returned a non-numeric score: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedProviderResponse(f"AI returned a non-numeric score: {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise MalformedProviderResponse(f"AI returned a non-numeric score: {value!r}")
    return max(MIN_SCORE, min(MAX_SCORE, int(round(number))))


def truncate_answer(answer_text):
    if len(answer_text) <= MAX_ANSWER_LENGTH:
        return answer_text
    return answer_text[:MAX_ANSWER_LENGTH] + "\n[...answer truncated]"


def build_question_prompt(question_text, ideal_answer, answer_text, similarity=None):
    overlap = ''
    if similarity is not None:
        overlap = (f"\nKeyword overlap between the candidate answer and the ideal answer "
                   f"(TF-IDF cosine, 0-1): {similarity:.2f}. Treat it as a weak hint only.\n")
    return f"""You are an experienced technical interviewer grading one answer.

Question:
\"\"\"{question_text}\"\"\"

Ideal answer (grading rubric):
\"\"\"{ideal_answer}\"\"\"

Candidate answer:
\"\"\"{truncate_answer(answer_text)}\"\"\"
{overlap}
Compare the candidate answer with the ideal answer. Reward correct key concepts,
penalise mistakes and missing essentials, and ignore style.

Return ONLY one JSON object:
{{"score": <integer 0-100>, "evaluation": "<2-3 sentences of feedback>"}}"""


def evaluate_answer(question_text, ideal_answer, answer_text, policy=None):
    """Score one answer against its rubric: {'score': int, 'evaluation': str}.

    Blank answers get 0 without asking the model.
    """
    if not answer_text or not answer_text.strip():
        return {'score': MIN_SCORE, 'evaluation': BLANK_ANSWER_EVALUATION}

    similarity = calculate_similarity(answer_text, ideal_answer)
    prompt = build_question_prompt(question_text, ideal_answer, answer_text, similarity)
    result = generate_structured(prompt, label='evaluate_answer', policy=policy)

    if 'score' not in result:
        raise MalformedProviderResponse("AI evaluation is missing 'score'.")
    evaluation = result.get('evaluation')
    if not isinstance(evaluation, str) or not evaluation.strip():
        raise MalformedProviderResponse("AI evaluation is missing 'evaluation'.")
    score = clamp_score(result['score'])
    logger.debug("Answer scored %s (similarity %.2f)", score, similarity)
    return {'score': score, 'evaluation': evaluation.strip()}


def build_overall_prompt(job_title, graded, average):
    lines = []
    for i, item in enumerate(graded, start=1):
        answer = item.get('answer_text') or ''
        answer = truncate_answer(answer) if answer.strip() else '(blank)'
        lines.append(f"Q{i}: {item['question_text']}\n"
                     f"Candidate answer: {answer}\n"
                     f"Score: {item['score']}/100\nFeedback: {item['evaluation']}")
    breakdown = "\n\n".join(lines)
    return f"""You are a hiring manager writing the final assessment of an interview
for the position "{job_title}".

Per-question results:
{breakdown}

The average score is {average}. Use it as the anchor for the overall score;
you may adjust it by up to 5-10 points for consistency, depth or critical gaps.

Return ONLY one JSON object:
{{"overallScore": <integer 0-100>, "aiOverallEvaluation": "<a short paragraph: strengths, weaknesses, recommendation>"}}"""


def grade_overall(job_title, graded, policy=None):
    """Summarise per-question results into {'overallScore', 'aiOverallEvaluation'}.

    `graded` is a list of dicts with question_text, answer_text, score and evaluation.
    """
    average = round(sum(item['score'] for item in graded) / len(graded)) if graded else 0
    result = generate_structured(build_overall_prompt(job_title, graded, average),
                                 label='evaluate_overall', policy=policy)
    if 'overallScore' not in result:
        raise MalformedProviderResponse("AI overall evaluation is missing 'overallScore'.")
    evaluation = result.get('aiOverallEvaluation')
    if not isinstance(evaluation, str) or not evaluation.strip():
        raise MalformedProviderResponse("AI overall evaluation is missing 'aiOverallEvaluation'.")
    return {'overallScore': clamp_score(result['overallScore']),
            'aiOverallEvaluation': evaluation.strip()}
