"""
Services used by sessions.

    - attempts: brute-force login protection
    - auth: register / login / logout
    - playlists: playlist CRUD and song editing
    - social: follow graph and playlist sharing
"""

from playdeck.services.attempts import AttemptTracker
from playdeck.services.auth import AuthService
from playdeck.services.playlists import PlaylistService
from playdeck.services.social import SocialService

__all__ = [
    "AttemptTracker",
    "AuthService",
    "PlaylistService",
    "SocialService",
]
