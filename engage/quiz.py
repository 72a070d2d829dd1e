"""
quiz.py - Campaign quiz: question bank, configuration checks, grading and
the reward curve.

Every campaign picks exactly 5 distinct questions from a fixed 20-entry bank
and configures each as a dropdown (3-10 options), a multiple-choice question
(exactly 4 options) or free text (canonical answer plus up to 3 synonyms).

Reward curve (fraction of the full per-visit reward):

    correct  0-2   3     4     5
    paid     0%    60%   80%   100%

A submission passes with 3 or more correct answers.
"""

import random
from decimal import Decimal
from typing import Dict, List, Optional, Union

from engage.errors import ValidationError
from engage.money import ZERO, to_amount

QUESTION_BANK: Dict[int, dict] = {
    1: {"text": "What is the primary color used in the website's logo?", "category": "visual"},
    2: {"text": "What is the main product or service offered?", "category": "content"},
    3: {"text": "What is the company or website name?", "category": "content"},
    4: {"text": "What is the tagline or slogan displayed on the homepage?", "category": "content"},
    5: {"text": "How many main navigation menu items are there?", "category": "visual"},
    6: {"text": "What is the call-to-action text on the main button?", "category": "content"},
    7: {"text": "What email address or contact method is displayed?", "category": "content"},
    8: {"text": "What year was the company founded (if mentioned)?", "category": "content"},
    9: {"text": "What social media platform is linked first?", "category": "content"},
    10: {"text": "What is the first benefit or feature mentioned?", "category": "content"},
    11: {"text": "What is the background color of the header?", "category": "visual"},
    12: {"text": "What type of pricing model is offered?", "category": "content"},
    13: {"text": "What is mentioned in the hero section headline?", "category": "content"},
    14: {"text": "How many testimonials or reviews are visible?", "category": "visual"},
    15: {"text": "What is the footer copyright text?", "category": "content"},
    16: {"text": "What industry or sector does the website serve?", "category": "content"},
    17: {"text": "What is the first word in the main headline?", "category": "content"},
    18: {"text": "What icon or image is used in the hero section?", "category": "visual"},
    19: {"text": "What customer support option is available?", "category": "content"},
    20: {"text": "What location or region is mentioned?", "category": "content"},
}

DROPDOWN = "dropdown"
MCQ = "mcq"
FREE_TEXT = "free_text"
INPUT_TYPES = (DROPDOWN, MCQ, FREE_TEXT)

QUESTIONS_PER_CAMPAIGN = 5
PASS_THRESHOLD = 3
DROPDOWN_MIN_OPTIONS = 3
DROPDOWN_MAX_OPTIONS = 10
MCQ_OPTIONS = 4
MAX_ANSWER_LENGTH = 120
MAX_SYNONYMS = 3

REWARD_MULTIPLIERS = {
    0: Decimal("0.00"),
    1: Decimal("0.00"),
    2: Decimal("0.00"),
    3: Decimal("0.60"),
    4: Decimal("0.80"),
    5: Decimal("1.00"),
}


def normalize_text(value) -> str:
    """Trim, collapse internal whitespace, lowercase."""
    if not isinstance(value, str):
        return ""
    return " ".join(value.split()).lower()


# ---------------------------------------------------------------------------
# Configuration validation
# ---------------------------------------------------------------------------

def validate_question_ids(question_ids) -> List[int]:
    if not isinstance(question_ids, (list, tuple)):
        raise ValidationError("Question IDs must be an array")
    if len(question_ids) != QUESTIONS_PER_CAMPAIGN:
        raise ValidationError(f"Exactly {QUESTIONS_PER_CAMPAIGN} questions must be selected")
    if len(set(question_ids)) != QUESTIONS_PER_CAMPAIGN:
        raise ValidationError("Questions must be distinct")
    for qid in question_ids:
        if qid not in QUESTION_BANK:
            raise ValidationError(f"Invalid question ID: {qid}")
    return list(question_ids)


def _validate_choice_options(options, input_type: str) -> tuple:
    if not isinstance(options, list):
        raise ValidationError(f"{'Dropdown' if input_type == DROPDOWN else 'MCQ'} requires an options array")
    if input_type == DROPDOWN:
        if len(options) < DROPDOWN_MIN_OPTIONS:
            raise ValidationError(f"Dropdown must have at least {DROPDOWN_MIN_OPTIONS} options")
        if len(options) > DROPDOWN_MAX_OPTIONS:
            raise ValidationError(f"Dropdown cannot have more than {DROPDOWN_MAX_OPTIONS} options")
    elif len(options) != MCQ_OPTIONS:
        raise ValidationError(f"MCQ must have exactly {MCQ_OPTIONS} options")

    seen = set()
    texts = []
    correct = []
    for i, opt in enumerate(options, start=1):
        if not isinstance(opt, dict) or not isinstance(opt.get("text"), str):
            raise ValidationError(f"Option {i} must have text")
        text = opt["text"].strip()
        if not text:
            raise ValidationError(f"Option {i} cannot be empty")
        norm = normalize_text(text)
        if norm in seen:
            raise ValidationError(f'Duplicate option: "{opt["text"]}"')
        seen.add(norm)
        texts.append(text)
        if opt.get("is_correct"):
            correct.append(text)
    if len(correct) != 1:
        raise ValidationError("Exactly one option must be marked correct")
    return texts, correct[0]


def _validate_free_text(config: dict) -> tuple:
    answer = config.get("correct_answer")
    if not isinstance(answer, str):
        raise ValidationError("Free-text requires a correct_answer")
    answer = answer.strip()
    if not answer:
        raise ValidationError("Correct answer cannot be empty")
    if len(answer) > MAX_ANSWER_LENGTH:
        raise ValidationError(f"Correct answer cannot exceed {MAX_ANSWER_LENGTH} characters")

    synonyms = config.get("synonyms") or []
    if not isinstance(synonyms, list):
        raise ValidationError("Synonyms must be an array")
    if len(synonyms) > MAX_SYNONYMS:
        raise ValidationError(f"Maximum {MAX_SYNONYMS} synonyms allowed")

    seen = {normalize_text(answer)}
    cleaned = []
    for i, syn in enumerate(synonyms, start=1):
        if not isinstance(syn, str) or not syn.strip():
            raise ValidationError(f"Synonym {i} cannot be empty")
        syn = syn.strip()
        if len(syn) > MAX_ANSWER_LENGTH:
            raise ValidationError(f"Synonym {i} cannot exceed {MAX_ANSWER_LENGTH} characters")
        norm = normalize_text(syn)
        if norm in seen:
            raise ValidationError(f'Duplicate answer/synonym: "{syn}"')
        seen.add(norm)
        cleaned.append(syn)
    return answer, cleaned


def validate_question(question: dict) -> dict:
    """Check one question config; returns the storable form."""
    qid = question.get("question_id")
    if isinstance(qid, bool) or not isinstance(qid, int):
        raise ValidationError("question_id is required")
    if qid not in QUESTION_BANK:
        raise ValidationError(f"Invalid question ID: {qid}")
    input_type = question.get("input_type")
    if input_type not in INPUT_TYPES:
        raise ValidationError(f"Invalid input_type. Must be one of: {', '.join(INPUT_TYPES)}")
    config = question.get("config")
    if not isinstance(config, dict):
        raise ValidationError("config is required")

    if input_type == FREE_TEXT:
        answer, synonyms = _validate_free_text(config)
        return {"question_id": qid, "input_type": input_type, "options": [],
                "correct_answer": answer, "synonyms": synonyms}
    options, correct = _validate_choice_options(config.get("options"), input_type)
    return {"question_id": qid, "input_type": input_type, "options": options,
            "correct_answer": correct, "synonyms": []}


def validate_campaign_questions(questions) -> List[dict]:
    if not isinstance(questions, list):
        raise ValidationError("Questions must be an array")
    if len(questions) != QUESTIONS_PER_CAMPAIGN:
        raise ValidationError(f"Exactly {QUESTIONS_PER_CAMPAIGN} questions required")
    cleaned = []
    for i, q in enumerate(questions, start=1):
        if not isinstance(q, dict):
            raise ValidationError(f"Question {i}: must be an object")
        try:
            cleaned.append(validate_question(q))
        except ValidationError as e:
            raise ValidationError(f"Question {i}: {e.message}")
    validate_question_ids([q["question_id"] for q in cleaned])
    return cleaned


# ---------------------------------------------------------------------------
# Grading and reward curve
# ---------------------------------------------------------------------------

def check_free_text_answer(answer, correct_answer: str, synonyms: List[str]) -> bool:
    given = normalize_text(answer)
    if not given:
        return False
    return given == normalize_text(correct_answer) or any(
        given == normalize_text(s) for s in synonyms
    )


def grade_answers(questions: List[dict], answers: Union[List[dict], Dict[int, str]]) -> int:
    """Count correct answers. Unknown or repeated question ids count as wrong."""
    if isinstance(answers, dict):
        answers = [{"question_id": k, "answer": v} for k, v in answers.items()]
    by_id = {q["question_id"]: q for q in questions}
    graded = set()
    correct = 0
    for item in answers:
        qid = item.get("question_id")
        question = by_id.get(qid)
        if question is None or qid in graded:
            continue
        graded.add(qid)
        given = item.get("answer")
        if question["input_type"] in (DROPDOWN, MCQ):
            if isinstance(given, str) and given == question["correct_answer"]:
                correct += 1
        elif check_free_text_answer(given, question["correct_answer"], question["synonyms"]):
            correct += 1
    return correct


def _check_count(correct_count) -> int:
    if isinstance(correct_count, bool) or not isinstance(correct_count, int):
        raise ValidationError("Correct count must be an integer")
    if correct_count < 0 or correct_count > QUESTIONS_PER_CAMPAIGN:
        raise ValidationError(f"Correct count must be between 0 and {QUESTIONS_PER_CAMPAIGN}")
    return correct_count


def is_pass(correct_count: int) -> bool:
    return _check_count(correct_count) >= PASS_THRESHOLD


def reward_multiplier(correct_count: int) -> Decimal:
    return REWARD_MULTIPLIERS[_check_count(correct_count)]


def calculate_reward(full_reward, correct_count: int) -> dict:
    multiplier = reward_multiplier(correct_count)
    passed = correct_count >= PASS_THRESHOLD
    reward = to_amount(to_amount(full_reward) * multiplier) if passed else ZERO
    return {
        "passed": passed,
        "correct_count": correct_count,
        "multiplier": multiplier,
        "reward": reward,
    }


def reward_tiers(full_reward) -> List[dict]:
    """Reward preview for 3, 4 and 5 correct answers."""
    return [
        {
            "correct": n,
            "multiplier": float(REWARD_MULTIPLIERS[n]),
            "reward": float(to_amount(to_amount(full_reward) * REWARD_MULTIPLIERS[n])),
        }
        for n in range(QUESTIONS_PER_CAMPAIGN, PASS_THRESHOLD - 1, -1)
    ]


def public_questions(questions: List[dict], rng: Optional[random.Random] = None) -> List[dict]:
    """Questions as shown to a visitor: shuffled, options shuffled, no answers."""
    rng = rng or random.SystemRandom()
    result = []
    for q in questions:
        bank = QUESTION_BANK.get(q["question_id"], {})
        item = {
            "question_id": q["question_id"],
            "text": bank.get("text", ""),
            "input_type": q["input_type"],
        }
        if q["input_type"] in (DROPDOWN, MCQ):
            options = list(q["options"])
            rng.shuffle(options)
            item["options"] = options
        result.append(item)
    rng.shuffle(result)
    return result
