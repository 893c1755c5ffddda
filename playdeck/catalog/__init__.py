"""
Song catalog for playdeck.

    - models: the immutable Song value
    - library: the read-only Catalog index and its searches
    - loader: startup scan of the music directory plus sample songs
"""

from playdeck.catalog.library import Catalog
from playdeck.catalog.loader import SAMPLE_SONGS, load_catalog
from playdeck.catalog.models import Song

__all__ = [
    "Catalog",
    "SAMPLE_SONGS",
    "Song",
    "load_catalog",
]
