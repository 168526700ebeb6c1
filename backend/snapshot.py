"""Client-safe views of a room.

Everything that leaves the server about a room is built here, so the correct
answer can only leak through ``snapshot`` once the room is in ``reveal``.
"""
from datetime import datetime
from typing import List, Optional

import config
from room import Room


def sorted_players(room: Room) -> List[dict]:
    """Players by descending score, ties broken by name."""
    players = [
        {"user_id": p.user_id, "name": p.name, "score": p.score, "connected": p.connected}
        for p in room.players.values()
    ]
    return sorted(players, key=lambda p: (-p["score"], p["name"].casefold(), p["name"]))


def snapshot(room: Room) -> dict:
    question = room.current_question
    correct_index = question.correct_index if (room.state == "reveal" and question) else None
    return {
        "code": room.code,
        "state": room.state,
        "q_index": room.q_index,
        "total": len(room.questions),
        "question": {"text": question.text, "choices": list(question.choices)} if question else None,
        "correct_index": correct_index,
        "start_at": room.start_at,
        "duration_ms": room.duration_ms,
        "answers_count": len(room.answers),
        "players": sorted_players(room),
    }


def room_update_event(room: Room) -> dict:
    return {"type": "ROOM_UPDATE", "room": snapshot(room)}


def answers_count_event(room: Room) -> dict:
    return {"type": "ANSWERS_COUNT", "answers_count": len(room.answers)}


def reveal_event(room: Room) -> dict:
    question = room.current_question
    return {
        "type": "QUESTION_REVEAL",
        "correct_index": question.correct_index if question else None,
        "top10": sorted_players(room)[:config.LEADERBOARD_TOP_N],
    }


def _format_score(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def build_score_text(room: Room, min_score: float, max_score: Optional[float] = None,
                     now: Optional[datetime] = None) -> str:
    """Plain-text leaderboard of players scoring within [min_score, max_score]."""
    players = [
        p for p in sorted_players(room)
        if p["score"] >= min_score and (max_score is None or p["score"] <= max_score)
    ]
    if max_score is None:
        range_text = f">={_format_score(min_score)}"
    else:
        range_text = f"{_format_score(min_score)}~{_format_score(max_score)}"
    generated = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    lines = [
        f"Room code: {room.code}",
        f"Score range: {range_text}",
        f"Generated at: {generated}",
        "",
    ]
    if not players:
        lines.append("No matching players")
        return "\n".join(lines)
    for i, p in enumerate(players, start=1):
        lines.append(f"{i}. {p['name'] or config.DEFAULT_PLAYER_NAME} - {p['score']}")
    return "\n".join(lines)


def export_filename(code: str, min_score: float, max_score: Optional[float] = None) -> str:
    if max_score is None:
        return f"score-{code}-ge{_format_score(min_score)}.txt"
    return f"score-{code}-{_format_score(min_score)}to{_format_score(max_score)}.txt"
