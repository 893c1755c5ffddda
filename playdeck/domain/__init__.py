"""
Domain model for playdeck.

Usage:
    from playdeck.domain import User, Playlist, AccountType
"""

from playdeck.domain.models import (
    CAPABILITIES,
    AccountType,
    Capabilities,
    CollaborativePlaylist,
    Playlist,
    User,
    normalize_username,
    same_username,
    validate_playlist_name,
)

__all__ = [
    "CAPABILITIES",
    "AccountType",
    "Capabilities",
    "CollaborativePlaylist",
    "Playlist",
    "User",
    "normalize_username",
    "same_username",
    "validate_playlist_name",
]
