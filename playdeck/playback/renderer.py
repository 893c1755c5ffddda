"""
Media renderer seam.

The playback engine tells a renderer when to start, pause and stop a song.
Audio output is not part of playdeck: the shipped LoggingRenderer only
logs what it would do. Another renderer can be plugged in through the
renderer factory held by the server context.
"""

from collections.abc import Callable
from typing import Protocol

from playdeck.catalog.models import Song
from playdeck.core.logger import get_logger


logger = get_logger(__name__)


class Renderer(Protocol):
    def play(self, song: Song) -> None: ...

    def pause(self, song: Song) -> None: ...

    def stop(self, song: Song | None) -> None: ...


RendererFactory = Callable[[str], Renderer]


class LoggingRenderer:
    """
    Renderer that logs each call at DEBUG level.

    Args:
        owner: Label of the session this renderer belongs to (used in log lines).
    """

    def __init__(self, owner: str = "") -> None:
        self.owner = owner

    def _prefix(self) -> str:
        return f"[{self.owner}] " if self.owner else ""

    def play(self, song: Song) -> None:
        location = f" from {song.file_path}" if song.file_path else ""
        logger.debug(f"{self._prefix()}Rendering '{song.title}'{location}")

    def pause(self, song: Song) -> None:
        logger.debug(f"{self._prefix()}Paused '{song.title}'")

    def stop(self, song: Song | None) -> None:
        if song is not None:
            logger.debug(f"{self._prefix()}Stopped '{song.title}'")


def logging_renderer_factory(owner: str) -> Renderer:
    return LoggingRenderer(owner)
