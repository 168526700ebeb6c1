"""Speed-based scoring applied when a question is revealed.

A correct answer is worth ``MAX_POINTS`` when received at the moment the
question opened and decays linearly to ``MIN_POINTS`` at the end of the
window. Answers arriving after the window still earn ``MIN_POINTS``.
Wrong or missing answers earn nothing; scores are never reduced.
"""
import math
from typing import Dict, Mapping

import config
from models import Answer, Question


def points_for(elapsed_ms: float, duration_ms: float) -> int:
    """Points for a correct answer received ``elapsed_ms`` after the start."""
    elapsed = max(0, elapsed_ms)
    ratio = min(1.0, elapsed / duration_ms) if duration_ms > 0 else 1.0
    spread = config.MAX_POINTS - config.MIN_POINTS
    # Half-up rounding, so x.5 always goes to the larger score
    return int(math.floor(config.MAX_POINTS - spread * ratio + 0.5))


def score_answers(question: Question, answers: Mapping[str, Answer],
                  start_at: int, duration_ms: int) -> Dict[str, int]:
    """Return user_id -> points for every correct answer."""
    awarded: Dict[str, int] = {}
    for user_id, answer in answers.items():
        if answer.choice_index != question.correct_index:
            continue
        awarded[user_id] = points_for(answer.received_at - start_at, duration_ms)
    return awarded
