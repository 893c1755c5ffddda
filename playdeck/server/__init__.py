"""
Network layer for playdeck.

    - protocol: command table, request parsing, response keywords
    - context: ServerContext bundling the shared services
    - session: SessionHandler, one per connection
    - app: PlaydeckServer, accept thread plus worker pool
"""

from playdeck.server.app import PlaydeckServer
from playdeck.server.context import ServerContext
from playdeck.server.session import SessionHandler

__all__ = ["PlaydeckServer", "ServerContext", "SessionHandler"]
