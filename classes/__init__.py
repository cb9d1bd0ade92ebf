from .events import ObservedMessage
from .game_state import GameState
from .player import Player

__all__ = ["GameState", "ObservedMessage", "Player"]
