from typing import Dict, List, Optional
import asyncio
import logging
import re
import time

from pydantic import ValidationError

import config
from errors import InvalidCommand, StateConflict
from models import Answer, Player, Question
from scoring import score_answers

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_questions(entries) -> List[Question]:
    """Build questions from raw entries, silently dropping invalid ones."""
    if not isinstance(entries, list) or not entries:
        raise InvalidCommand("Invalid questions")
    clean = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.debug("Dropping question %d: not an object", i)
            continue
        try:
            clean.append(Question.model_validate(entry))
        except ValidationError as e:
            logger.debug("Dropping question %d: %s", i, e.errors()[0].get("msg"))
    if not clean:
        raise InvalidCommand("No valid questions")
    return clean


def clamp_duration(value) -> int:
    """Clamp a requested answer window to the allowed range, in ms."""
    if isinstance(value, bool):
        value = None
    try:
        duration = int(value or config.DEFAULT_QUESTION_DURATION_MS)
    except (TypeError, ValueError):
        duration = config.DEFAULT_QUESTION_DURATION_MS
    return max(config.MIN_QUESTION_DURATION_MS, min(config.MAX_QUESTION_DURATION_MS, duration))


def clean_player_name(raw) -> str:
    """Trim and check a display name against the configured policy."""
    name = str(raw or "").strip()
    if config.PLAYER_NAME_PATTERN and not re.fullmatch(config.PLAYER_NAME_PATTERN, name, re.ASCII):
        raise InvalidCommand(config.PLAYER_NAME_RULE)
    return name[:config.MAX_NAME_LENGTH] or config.DEFAULT_PLAYER_NAME


class Room:
    """A single quiz room and its lifecycle.

    States: ``lobby`` -> ``question`` -> ``reveal`` -> ``lobby`` (next question)
    or ``ended`` after the last one. All mutations are synchronous, so a
    command handler never leaves a room half-updated across an ``await``.
    Rejections raise :class:`errors.CommandRejected` before anything changes.
    """

    def __init__(self, code: str, questions: List[Question], host_conn: Optional[str] = None):
        self.code = code
        self.host_conn = host_conn  # connection id of the current host
        self.state = "lobby"  # lobby, question, reveal, ended
        self.q_index = 0
        self.questions: List[Question] = list(questions)
        self.start_at = 0  # epoch ms when the current question opened
        self.duration_ms = config.DEFAULT_QUESTION_DURATION_MS
        self.players: Dict[str, Player] = {}  # user_id -> Player
        self.answers: Dict[str, Answer] = {}  # user_id -> answer to the current question
        self.reveal_timer: Optional[asyncio.Task] = None

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.q_index < len(self.questions):
            return self.questions[self.q_index]
        return None

    def cancel_reveal_timer(self):
        if self.reveal_timer:
            self.reveal_timer.cancel()
            self.reveal_timer = None

    def set_questions(self, entries):
        """Replace the question set and rewind to the first question."""
        self.questions = parse_questions(entries)
        self.cancel_reveal_timer()
        self.q_index = 0
        self.state = "lobby"
        self.answers.clear()
        for player in self.players.values():
            player.last_answered = -1
        logger.info("Room %s: %d questions loaded", self.code, len(self.questions))

    def start(self, duration_ms=None, now: Optional[int] = None) -> int:
        """Open the answer window for the current question.

        Returns the question index the caller must hand to the reveal timer.
        """
        if self.current_question is None:
            raise StateConflict("No question")
        if self.state != "lobby":
            raise StateConflict("Already started")
        self.cancel_reveal_timer()
        self.state = "question"
        self.duration_ms = clamp_duration(duration_ms)
        self.start_at = now if now is not None else now_ms()
        self.answers.clear()
        logger.info("Room %s: question %d started (%d ms)", self.code, self.q_index + 1, self.duration_ms)
        return self.q_index

    def reveal(self, q_index: Optional[int] = None) -> Optional[Dict[str, int]]:
        """Score the open question and show the correct answer.

        No-op returning None when no question is open, or when ``q_index``
        belongs to a question the room has already moved past.
        """
        if self.state != "question":
            return None
        if q_index is not None and q_index != self.q_index:
            return None
        self.cancel_reveal_timer()
        question = self.questions[self.q_index]
        awarded = score_answers(question, self.answers, self.start_at, self.duration_ms)
        for user_id, points in list(awarded.items()):
            player = self.players.get(user_id)
            if player is None:
                del awarded[user_id]
                continue
            player.score += points
        self.state = "reveal"
        logger.info("Room %s: question %d revealed, %d/%d correct",
                    self.code, self.q_index + 1, len(awarded), len(self.answers))
        return awarded

    def next_question(self):
        if not self.questions:
            raise StateConflict("No question")
        if self.state == "ended":
            raise StateConflict("Already ended")
        self.cancel_reveal_timer()
        if self.q_index >= len(self.questions) - 1:
            self.state = "ended"
            logger.info("Room %s: quiz ended", self.code)
        else:
            self.q_index += 1
            self.state = "lobby"
        self.answers.clear()

    def join_player(self, user_id: str, name: str, conn_id: Optional[str]) -> Player:
        """Add a player, or re-attach a returning one keeping their score."""
        player = self.players.get(user_id)
        if player:
            player.name = name
            player.conn_id = conn_id
            player.connected = True
            logger.info("Player '%s' rejoined room %s with score %d", name, self.code, player.score)
        else:
            player = Player(user_id=user_id, name=name, conn_id=conn_id)
            self.players[user_id] = player
            logger.info("Player '%s' joined room %s", name, self.code)
        return player

    def submit_answer(self, user_id: str, choice_index, now: Optional[int] = None) -> Answer:
        if self.state != "question":
            raise StateConflict("Not accepting answers")
        if (isinstance(choice_index, bool) or not isinstance(choice_index, int)
                or not 0 <= choice_index < config.CHOICES_PER_QUESTION):
            raise InvalidCommand("Invalid choice")
        player = self.players.get(user_id)
        if player is None:
            raise StateConflict("Not joined")
        if player.last_answered == self.q_index:
            raise StateConflict("Already answered")
        player.last_answered = self.q_index
        answer = Answer(choice_index=choice_index, received_at=now if now is not None else now_ms())
        self.answers[user_id] = answer
        return answer

    def mark_disconnected(self, conn_id: str) -> bool:
        """Flag players on ``conn_id`` as disconnected. Returns True if anything changed."""
        changed = False
        for player in self.players.values():
            if player.conn_id == conn_id and player.connected:
                player.connected = False
                changed = True
                logger.info("Player '%s' disconnected from room %s", player.name, self.code)
        if self.host_conn == conn_id:
            self.host_conn = None
            logger.info("Host disconnected from room %s", self.code)
        return changed
