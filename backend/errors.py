"""Rejection reasons for room commands.

Raised by the room state machine and the session gateway, and turned into
``ok: false`` replies by the gateway dispatcher. None of them ever reaches the
transport.
"""


class CommandRejected(Exception):
    """Base class: the command was refused, room state is untouched."""


class RoomNotFound(CommandRejected):
    def __init__(self, message: str = "Room not found"):
        super().__init__(message)


class Unauthorized(CommandRejected):
    def __init__(self, message: str = "ADMIN_KEY invalid"):
        super().__init__(message)


class InvalidCommand(CommandRejected):
    pass


class StateConflict(CommandRejected):
    pass
