"""
Shared server state handed to every session.

The context is built once by the CLI (or by a test) and passed to each
SessionHandler when its connection is accepted. There are no module-level
singletons: two contexts in one process are fully independent.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass

from playdeck.catalog.library import Catalog
from playdeck.core.config import Config
from playdeck.core.passwords import PasswordHasher
from playdeck.core.store import UserStore
from playdeck.playback.renderer import RendererFactory, logging_renderer_factory
from playdeck.services.attempts import AttemptTracker
from playdeck.services.auth import AuthService
from playdeck.services.playlists import PlaylistService
from playdeck.services.social import SocialService


@dataclass
class ServerContext:
    """
    Everything a session needs.

    Attributes:
        config: Loaded configuration.
        catalog: Read-only song catalog.
        store: Shared user store.
        tracker: Process-wide login attempt tracker.
        auth: Authentication service.
        playlists: Playlist service.
        social: Social service.
        renderer_factory: Builds one renderer per playback session.
        rng_factory: Builds the random source used by a session's shuffle
                     mode; None means an unseeded random.Random.
    """
    config: Config
    catalog: Catalog
    store: UserStore
    tracker: AttemptTracker
    auth: AuthService
    playlists: PlaylistService
    social: SocialService
    renderer_factory: RendererFactory = logging_renderer_factory
    rng_factory: Callable[[], random.Random] | None = None

    @classmethod
    def create(
        cls,
        config: Config,
        catalog: Catalog,
        tracker: AttemptTracker | None = None,
        renderer_factory: RendererFactory = logging_renderer_factory,
        rng_factory: Callable[[], random.Random] | None = None
    ) -> "ServerContext":
        """
        Wire the services from a configuration and a loaded catalog.

        Raises:
            PersistenceError: If the store directory cannot be created.
        """
        store = UserStore(config.storage.users_file)
        hasher = PasswordHasher(rounds=config.security.bcrypt_rounds)
        tracker = tracker or AttemptTracker()
        return cls(
            config=config,
            catalog=catalog,
            store=store,
            tracker=tracker,
            auth=AuthService(store, hasher, tracker),
            playlists=PlaylistService(store, catalog),
            social=SocialService(store),
            renderer_factory=renderer_factory,
            rng_factory=rng_factory,
        )

    def new_rng(self) -> random.Random:
        return self.rng_factory() if self.rng_factory else random.Random()
