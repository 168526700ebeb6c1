from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

import config


class Question(BaseModel):
    """One multiple-choice question. Frozen once built."""
    model_config = ConfigDict(frozen=True)

    text: str
    choices: Tuple[str, ...]
    correct_index: int

    @field_validator('text', mode='before')
    @classmethod
    def validate_text(cls, v) -> str:
        if v is None or isinstance(v, (dict, list)):
            raise ValueError('Question text is required')
        v = str(v).strip()
        if not v:
            raise ValueError('Question text is required')
        return v[:config.MAX_QUESTION_TEXT_LENGTH]

    @field_validator('choices', mode='before')
    @classmethod
    def validate_choices(cls, v) -> list:
        if not isinstance(v, (list, tuple)) or len(v) != config.CHOICES_PER_QUESTION:
            raise ValueError(f'Question must have exactly {config.CHOICES_PER_QUESTION} choices')
        return [str(c)[:config.MAX_CHOICE_LENGTH] for c in v]

    @field_validator('correct_index', mode='before')
    @classmethod
    def reject_bool_index(cls, v):
        if isinstance(v, bool):
            raise ValueError('correct_index must be an integer')
        return v

    @field_validator('correct_index')
    @classmethod
    def validate_correct_index(cls, v: int) -> int:
        if not 0 <= v < config.CHOICES_PER_QUESTION:
            raise ValueError('Invalid correct_index')
        return v


@dataclass
class Player:
    user_id: str
    name: str
    conn_id: Optional[str] = None
    score: int = 0
    last_answered: int = -1  # question index of the last accepted answer
    connected: bool = True


@dataclass(frozen=True)
class Answer:
    choice_index: int
    received_at: int  # server epoch ms
