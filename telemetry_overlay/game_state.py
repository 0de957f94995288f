from __future__ import annotations

from enum import IntEnum
from typing import Any


class GameState(IntEnum):
    """osu! client status codes as published in the `state` / `status` fields."""

    PRE_SONG_SELECT = 0
    PLAYING = 2
    EDITOR_SONG_SELECT = 4
    SONG_SELECT = 5
    RESULT_SCREEN = 7
    MULTIPLAYER_LOBBY_SELECT = 11
    MULTIPLAYER_LOBBY = 12
    UNKNOWN = -1

    @classmethod
    def from_value(cls, value: Any) -> "GameState":
        if isinstance(value, str):
            token = value.strip()
            lookup = token.upper().replace(" ", "_")
            if lookup in cls.__members__:
                return cls[lookup]
            # Server variants that serialise the enum by name in CamelCase.
            for member in cls:
                if member.name.replace("_", "") == lookup.replace("_", ""):
                    return member
            try:
                value = int(token)
            except ValueError:
                return cls.UNKNOWN
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return cls.UNKNOWN
        try:
            return cls(int(value))
        except ValueError:
            return cls.UNKNOWN


def coerce_state_token(value: Any) -> Any:
    """Map a configured state name (e.g. "Playing") to its numeric code, else pass through."""
    if isinstance(value, str):
        state = GameState.from_value(value)
        if state is not GameState.UNKNOWN:
            return int(state)
    return value
