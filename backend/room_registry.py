from typing import Dict, List, Optional
import random
import logging

import config
from models import Question
from room import Room

logger = logging.getLogger(__name__)


def normalize_code(raw) -> str:
    return str(raw or "").strip().upper()


def make_code(length: int = config.ROOM_CODE_LENGTH) -> str:
    return ''.join(random.choices(config.ROOM_CODE_ALPHABET, k=length))


def default_questions() -> List[Question]:
    """Built-in question set used until the host uploads one."""
    return [
        Question(text="Which planet is known as the Red Planet?",
                 choices=["Venus", "Mars", "Jupiter", "Mercury"], correct_index=1),
        Question(text="How many continents are there?",
                 choices=["Five", "Six", "Seven", "Eight"], correct_index=2),
        Question(text="What is the largest ocean on Earth?",
                 choices=["Pacific", "Atlantic", "Indian", "Arctic"], correct_index=0),
        Question(text="Which gas do plants absorb from the air?",
                 choices=["Oxygen", "Nitrogen", "Helium", "Carbon dioxide"], correct_index=3),
        Question(text="How many minutes are in a day?",
                 choices=["1440", "1240", "1600", "1140"], correct_index=0),
    ]


class RoomRegistry:
    """Process-wide table of rooms, keyed by code. Rooms are never removed."""

    def __init__(self):
        self.rooms: Dict[str, Room] = {}

    def create_room(self, host_conn: Optional[str] = None,
                    questions: Optional[List[Question]] = None) -> Room:
        code = make_code()
        while code in self.rooms:
            code = make_code()
        room = Room(code, questions if questions is not None else default_questions(),
                    host_conn=host_conn)
        self.rooms[code] = room
        logger.info("Room created: %s", code)
        return room

    def find_room(self, code) -> Optional[Room]:
        return self.rooms.get(normalize_code(code))


registry = RoomRegistry()
