"""
Per-connection playback for playdeck.

    - linked: doubly linked view over a loaded playlist
    - modes: playback modes and traversal strategies
    - engine: player state machine (PlaybackSession)
    - renderer: media renderer seam (the shipped renderer only logs)
"""

from playdeck.playback.engine import PlaybackSession, PlaybackState, PlayerStatus
from playdeck.playback.modes import PlaybackMode
from playdeck.playback.renderer import LoggingRenderer, Renderer, logging_renderer_factory

__all__ = [
    "LoggingRenderer",
    "PlaybackMode",
    "PlaybackSession",
    "PlaybackState",
    "PlayerStatus",
    "Renderer",
    "logging_renderer_factory",
]
