"""
Catalog loading for playdeck.

The catalog is assembled once at startup from two sources:
    1. The built-in sample songs (when library.seed_samples is true)
    2. Audio files found in library.directory, with tags read by mutagen

Tag reading falls back to the file name when a tag is missing:
"Artist - Title.mp3" yields artist and title, anything else yields the
stem as title and "Unknown" as artist.

A scanned file whose title matches a sample song does not create a second
entry: the sample keeps its curated album/genre/duration and gains the
file's path.

Usage:
    catalog = load_catalog(config.library)
"""

import dataclasses
from pathlib import Path

import mutagen
from tqdm import tqdm

from playdeck.catalog.library import Catalog
from playdeck.catalog.models import UNKNOWN, Song
from playdeck.core.config import LibraryConfig
from playdeck.core.exceptions import CatalogError
from playdeck.core.logger import get_logger


logger = get_logger(__name__)


SAMPLE_SONGS: tuple[Song, ...] = (
    Song("Mussulo", "Dj Aka-m e Dj Malvado Feat Dody", "Afro House", "Electronic", 416),
    Song("Ciel", "GIMS", "Rap", "Hip-Hop", 306),
    Song("NINAO", "GIMS", "Rap", "Hip-Hop", 247),
    Song("Mood", "Keblack", "Rap", "Hip-Hop", 253),
    Song("Melrose Place", "Keblack Ft. Guy2Bezbar", "Rap", "Hip-Hop", 234),
)

# Below this many files the progress bar is just noise
_PROGRESS_THRESHOLD = 20


def _first_tag(tags, name: str) -> str | None:
    values = tags.get(name) if tags is not None else None
    if not values:
        return None
    value = str(values[0]).strip()
    return value or None


def _split_stem(stem: str) -> tuple[str, str]:
    """Return (artist, title) guessed from a file name stem."""
    artist, sep, title = stem.partition(" - ")
    if sep and artist.strip() and title.strip():
        return artist.strip(), title.strip()
    return UNKNOWN, stem.strip()


def read_song(path: Path) -> Song | None:
    """
    Build a Song from an audio file.

    Args:
        path: Audio file to read.

    Returns:
        Song | None: The song, or None when mutagen cannot parse the file
                     (the reason is logged as a warning).
    """
    try:
        audio = mutagen.File(path, easy=True)
    except (mutagen.MutagenError, OSError) as e:
        logger.warning(f"Skipping unreadable audio file {path.name}: {e}")
        return None

    if audio is None:
        logger.warning(f"Skipping {path.name}: unrecognised audio format")
        return None

    guessed_artist, guessed_title = _split_stem(path.stem)
    tags = audio.tags

    title = _first_tag(tags, "title") or guessed_title
    artist = _first_tag(tags, "artist") or guessed_artist
    album = _first_tag(tags, "album") or UNKNOWN
    genre = _first_tag(tags, "genre") or UNKNOWN

    length = getattr(audio.info, "length", 0) or 0
    duration = int(round(length))

    if not title:
        logger.warning(f"Skipping {path.name}: no title")
        return None

    return Song(
        title=title,
        artist=artist,
        album=album,
        genre=genre,
        duration=duration,
        file_path=str(path),
    )


def scan_directory(directory: Path, extensions: tuple[str, ...], show_progress: bool = True) -> list[Song]:
    """
    Scan a directory (non-recursively) for audio files.

    Args:
        directory: Directory to scan. A missing directory yields no songs.
        extensions: Lower-case suffixes to include, e.g. (".mp3", ".flac").
        show_progress: Show a tqdm bar for large directories.

    Returns:
        list[Song]: Songs sorted by file name.

    Raises:
        CatalogError: If directory exists but is not a directory, or
                      cannot be listed.
    """
    if not directory.exists():
        logger.info(f"Music directory {directory} does not exist, no files scanned")
        return []

    if not directory.is_dir():
        raise CatalogError(
            f"Music path is not a directory: {directory}",
            details={"path": str(directory)}
        )

    try:
        files = sorted(
            entry for entry in directory.iterdir()
            if entry.is_file() and entry.suffix.lower() in extensions
        )
    except OSError as e:
        raise CatalogError(
            f"Cannot read music directory {directory}: {e}",
            details={"path": str(directory), "original_error": str(e)}
        ) from e

    iterator = files
    if show_progress and len(files) >= _PROGRESS_THRESHOLD:
        iterator = tqdm(files, desc="Scanning library", unit="file")

    songs = []
    for path in iterator:
        song = read_song(path)
        if song is not None:
            songs.append(song)

    logger.debug(f"Scanned {len(files)} files in {directory}, {len(songs)} readable")
    return songs


def merge_with_samples(samples: tuple[Song, ...], scanned: list[Song]) -> list[Song]:
    """
    Combine sample songs and scanned songs.

    A scanned song with the same title as a sample is folded into the
    sample (sample metadata kept, file path taken from the scan).
    """
    merged = list(samples)
    index_by_key = {song.key: i for i, song in enumerate(merged)}

    for song in scanned:
        position = index_by_key.get(song.key)
        if position is None:
            index_by_key[song.key] = len(merged)
            merged.append(song)
            continue

        existing = merged[position]
        if existing.file_path is None:
            merged[position] = dataclasses.replace(existing, file_path=song.file_path)
            logger.debug(f"Attached {song.file_path} to sample song '{existing.title}'")

    return merged


def load_catalog(library_config: LibraryConfig, show_progress: bool = True) -> Catalog:
    """
    Build the catalog described by the library configuration.

    Raises:
        CatalogError: If the music directory cannot be read.
    """
    samples = SAMPLE_SONGS if library_config.seed_samples else ()
    scanned = scan_directory(library_config.directory, library_config.extensions, show_progress)

    catalog = Catalog(merge_with_samples(samples, scanned))
    logger.info(
        f"Catalog loaded: {len(catalog)} songs "
        f"({len(samples)} samples, {len(scanned)} scanned)"
    )
    return catalog
