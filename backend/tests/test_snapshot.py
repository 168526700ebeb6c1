"""Tests for the client-facing room projections and the score export text."""
import sys
import os
from datetime import datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from models import Question
from room import Room
from snapshot import (
    answers_count_event, build_score_text, export_filename, reveal_event,
    room_update_event, snapshot, sorted_players,
)


def make_room():
    questions = [
        Question(text="Pick B", choices=["A", "B", "C", "D"], correct_index=1),
        Question(text="Pick D", choices=["A", "B", "C", "D"], correct_index=3),
    ]
    return Room("SNAP01", questions)


def add_player(room, user_id, name, score=0, connected=True):
    player = room.join_player(user_id, name, f"conn-{user_id}")
    player.score = score
    player.connected = connected
    return player


class TestSortedPlayers:
    def test_score_descending(self):
        room = make_room()
        add_player(room, "a", "Alice", 300)
        add_player(room, "b", "Bob", 900)
        add_player(room, "c", "Carol", 500)
        assert [p["name"] for p in sorted_players(room)] == ["Bob", "Carol", "Alice"]

    def test_ties_broken_by_name(self):
        room = make_room()
        add_player(room, "z", "Zed", 100)
        add_player(room, "b", "bea", 100)
        add_player(room, "a", "Amy", 100)
        assert [p["name"] for p in sorted_players(room)] == ["Amy", "bea", "Zed"]

    def test_fields(self):
        room = make_room()
        add_player(room, "a", "Alice", 10, connected=False)
        assert sorted_players(room) == [
            {"user_id": "a", "name": "Alice", "score": 10, "connected": False},
        ]

    def test_ordering_holds_for_many_configurations(self):
        room = make_room()
        scores = [0, 840, 840, 1000, 200, 0, 1840]
        for i, score in enumerate(scores):
            add_player(room, f"u{i}", f"P{(i * 7) % 10}", score)
        players = sorted_players(room)
        for first, second in zip(players, players[1:]):
            assert (first["score"] > second["score"]
                    or (first["score"] == second["score"] and first["name"] <= second["name"]))


class TestSnapshot:
    def test_lobby_hides_correct_index(self):
        room = make_room()
        snap = snapshot(room)
        assert snap["code"] == "SNAP01"
        assert snap["state"] == "lobby"
        assert snap["q_index"] == 0
        assert snap["total"] == 2
        assert snap["question"] == {"text": "Pick B", "choices": ["A", "B", "C", "D"]}
        assert snap["correct_index"] is None
        assert snap["answers_count"] == 0
        assert snap["players"] == []

    def test_question_hides_correct_index(self):
        room = make_room()
        room.start(5000, now=1234)
        snap = snapshot(room)
        assert snap["correct_index"] is None
        assert snap["start_at"] == 1234
        assert snap["duration_ms"] == 5000
        assert "correct_index" not in snap["question"]

    def test_reveal_shows_correct_index(self):
        room = make_room()
        room.start(5000)
        room.reveal()
        assert snapshot(room)["correct_index"] == 1

    def test_answers_count(self):
        room = make_room()
        add_player(room, "a", "Alice")
        add_player(room, "b", "Bob")
        room.start(5000, now=0)
        room.submit_answer("a", 0, now=10)
        assert snapshot(room)["answers_count"] == 1
        assert answers_count_event(room) == {"type": "ANSWERS_COUNT", "answers_count": 1}

    def test_no_question(self):
        room = Room("EMPTY1", [])
        snap = snapshot(room)
        assert snap["question"] is None
        assert snap["total"] == 0

    def test_room_update_event_wraps_snapshot(self):
        room = make_room()
        assert room_update_event(room) == {"type": "ROOM_UPDATE", "room": snapshot(room)}


class TestRevealEvent:
    def test_top_ten_only(self):
        room = make_room()
        for i in range(15):
            add_player(room, f"u{i}", f"Player{i:02d}", i * 100)
        room.start(5000)
        room.reveal()
        event = reveal_event(room)
        assert event["type"] == "QUESTION_REVEAL"
        assert event["correct_index"] == 1
        assert len(event["top10"]) == 10
        assert event["top10"][0]["score"] == 1400


class TestScoreExport:
    NOW = datetime(2026, 5, 1, 18, 30, 0)

    def make_scored_room(self):
        room = make_room()
        add_player(room, "a", "Alice", 2500)
        add_player(room, "b", "Bob", 1500)
        add_player(room, "c", "Carol", 3200)
        return room

    def test_open_range(self):
        text = build_score_text(self.make_scored_room(), 2000, None, now=self.NOW)
        assert text.split("\n") == [
            "Room code: SNAP01",
            "Score range: >=2000",
            "Generated at: 2026-05-01 18:30:00",
            "",
            "1. Carol - 3200",
            "2. Alice - 2500",
        ]

    def test_closed_range(self):
        text = build_score_text(self.make_scored_room(), 1000, 3000, now=self.NOW)
        lines = text.split("\n")
        assert lines[1] == "Score range: 1000~3000"
        assert lines[4:] == ["1. Alice - 2500", "2. Bob - 1500"]

    def test_no_matches(self):
        text = build_score_text(self.make_scored_room(), 5000, None, now=self.NOW)
        assert text.endswith("\nNo matching players")

    def test_filenames(self):
        assert export_filename("ABCDEF", 2000) == "score-ABCDEF-ge2000.txt"
        assert export_filename("ABCDEF", 1000, 3000) == "score-ABCDEF-1000to3000.txt"
        assert export_filename("ABCDEF", 2000.0) == "score-ABCDEF-ge2000.txt"
