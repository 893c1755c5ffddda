"""
Per-connection session handler.

A SessionHandler owns one accepted socket from the first line to the
close. It reads request lines, dispatches them to the services held by
the ServerContext and writes the response lines back. All per-connection
state lives here: the authenticated username, the preferred playback mode
and the PlaybackSession of the loaded playlist.

handle_line() is the whole request/response logic and never touches the
socket, so it can be driven directly. run() is the socket loop around it.
"""

import socket
from collections.abc import Callable

from playdeck.catalog.models import Song
from playdeck.core.exceptions import (
    AuthError,
    DomainError,
    PersistenceError,
    ProtocolError,
    TransportError,
)
from playdeck.core.logger import get_logger
from playdeck.domain.models import AccountType, CAPABILITIES, Playlist
from playdeck.playback.engine import PlaybackSession, PlayerStatus
from playdeck.playback.modes import PlaybackMode
from playdeck.server import protocol
from playdeck.server.context import ServerContext
from playdeck.server.protocol import END, Command, CommandSpec


logger = get_logger(__name__)

Handler = Callable[[Command], list[str]]


class SessionHandler:
    """
    Serve one client connection.

    Args:
        context: Shared services.
        conn: Connected socket, or None when lines are fed through
              handle_line() directly.
        peer: Client label for log lines ("host:port").
        timeout: Idle timeout in seconds, None to wait forever.

    Attributes:
        username: Registered spelling of the logged-in user, or None.
        account_type: Tier of the logged-in user.
        preferred_mode: Mode used for the next LOAD_PLAYLIST.
        playback: Player over the loaded playlist, or None.
        finished: Set by QUIT; run() stops after sending BYE.
    """

    def __init__(
        self,
        context: ServerContext,
        conn: socket.socket | None = None,
        peer: str = "local",
        timeout: float | None = None
    ) -> None:
        self.context = context
        self.conn = conn
        self.peer = peer
        self.timeout = timeout

        self.username: str | None = None
        self.account_type: AccountType | None = None
        self.preferred_mode = PlaybackMode.SEQUENTIAL
        self.playback: PlaybackSession | None = None
        self.finished = False
        self._closed = False

        self._handlers: dict[str, Handler] = {
            "CREATE": self._create_account,
            "LOGIN": self._login,
            "LOGOUT": self._logout,
            "QUIT": self._quit,
            "GET_ALL_SONGS": self._get_all_songs,
            "SEARCH_TITLE": self._search_title,
            "SEARCH_ARTIST": self._search_artist,
            "SEARCH_GENRE": self._search_genre,
            "CREATE_PLAYLIST": self._create_playlist,
            "CREATE_COLLAB_PLAYLIST": self._create_collab_playlist,
            "GET_PLAYLISTS": self._get_playlists,
            "GET_COLLAB_PLAYLISTS": self._get_collab_playlists,
            "CHECK_PLAYLIST": self._check_playlist,
            "GET_PLAYLIST_SONGS": self._get_playlist_songs,
            "ADD_SONG_TO_PLAYLIST": self._add_song,
            "REMOVE_SONG_FROM_PLAYLIST": self._remove_song,
            "REORDER_PLAYLIST_SONG": self._reorder_song,
            "DELETE_PLAYLIST": self._delete_playlist,
            "FOLLOW_USER": self._follow_user,
            "UNFOLLOW_USER": self._unfollow_user,
            "GET_FOLLOWED_USERS": self._get_followed_users,
            "SET_PLAYLIST_SHARING": self._set_sharing,
            "GET_SHARED_PLAYLISTS": self._get_shared_playlists,
            "GET_SHARED_PLAYLIST_SONGS": self._get_shared_playlist_songs,
            "COPY_SHARED_PLAYLIST": self._copy_shared_playlist,
            "LOAD_SHARED_PLAYLIST": self._load_shared_playlist,
            "LOAD_PLAYLIST": self._load_playlist,
            "SET_PLAYBACK_MODE": self._set_playback_mode,
            "PLAYER_PLAY": self._player_play,
            "PLAYER_PAUSE": self._player_pause,
            "PLAYER_STOP": self._player_stop,
            "PLAYER_NEXT": self._player_next,
            "PLAYER_PREV": self._player_prev,
            "PLAYER_STATUS": self._player_status,
            "PLAYER_EXIT": self._player_exit,
        }

    @property
    def authenticated(self) -> bool:
        return self.username is not None

    # ------------------------------------------------------------------
    # Socket loop
    # ------------------------------------------------------------------

    def run(self) -> None:
        """
        Serve the connection until EOF, QUIT, idle timeout or a socket error.

        Always tears down the playback session and closes the socket on exit.
        """
        if self.conn is None:
            raise TransportError("Session has no connection", details={"peer": self.peer})

        logger.info(f"Client connected: {self.peer}")
        reader = None
        try:
            self.conn.settimeout(self.timeout)
            reader = self.conn.makefile("rb")
            while not self.finished and not self._closed:
                try:
                    raw = reader.readline(protocol.MAX_LINE_BYTES + 1)
                except TimeoutError:
                    logger.info(f"Closing idle connection {self.peer} after {self.timeout} seconds")
                    break

                if not raw:
                    break

                if len(raw) > protocol.MAX_LINE_BYTES and not raw.endswith(b"\n"):
                    logger.warning(f"Line too long from {self.peer}, discarding it")
                    self._discard_line(reader)
                    self._send([protocol.ERROR_PREFIX + protocol.LINE_TOO_LONG])
                    continue

                line = raw.decode("utf-8", errors="replace")
                self._send(self.handle_line(line))

        except TransportError as e:
            logger.info(f"Connection to {self.peer} lost: {e.message}")
        except OSError as e:
            if not self._closed:
                logger.info(f"Connection to {self.peer} lost: {e}")
        finally:
            if reader is not None:
                reader.close()
            self.close()
            logger.info(f"Client disconnected: {self.peer}")

    def _discard_line(self, reader) -> None:
        while True:
            chunk = reader.readline(protocol.MAX_LINE_BYTES + 1)
            if not chunk or chunk.endswith(b"\n"):
                return

    def _send(self, lines: list[str]) -> None:
        if not lines:
            return
        payload = "".join(f"{line}\n" for line in lines).encode("utf-8")
        try:
            self.conn.sendall(payload)
        except OSError as e:
            raise TransportError("Could not send response", details={"peer": self.peer, "error": str(e)}) from e

    def close(self) -> None:
        """
        Tear the session down: stop playback and close the socket.

        Also called by the server on shutdown to unblock a pending read.
        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        self._close_playback()

        if self.conn is not None:
            try:
                self.conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                logger.debug(f"Socket to {self.peer} already shut down")
            self.conn.close()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle_line(self, line: str) -> list[str]:
        """
        Execute one request line and return the response lines.

        Failures never escape: protocol, auth, domain and persistence errors
        become failure lines for the command; anything else is logged with
        its traceback and answered with a generic server error.
        """
        try:
            command = protocol.parse_command(line)
        except ProtocolError as e:
            return [protocol.ERROR_PREFIX + e.message]

        spec = command.spec
        if spec is None:
            logger.debug(f"Unknown command '{command.keyword}' from {self.peer}")
            return [f"{protocol.ERROR_PREFIX}Unknown command {command.keyword}"]

        if spec.requires_auth and not self.authenticated:
            return self._failure(spec, protocol.NOT_LOGGED_IN, prefix=protocol.ERROR_PREFIX)

        handler = self._handlers[spec.keyword]
        try:
            return handler(command)
        except (ProtocolError, AuthError, DomainError) as e:
            return self._failure(spec, e.message)
        except PersistenceError as e:
            logger.error(f"Store failure during {spec.keyword} for {self.username or self.peer}: {e.message}")
            return self._failure(spec, protocol.SAVE_FAILED)
        except Exception:
            logger.exception(f"Unexpected error handling {spec.keyword} from {self.peer}")
            return self._failure(spec, protocol.SERVER_ERROR, prefix=protocol.ERROR_PREFIX)

    def _failure(self, spec: CommandSpec, message: str, prefix: str | None = None) -> list[str]:
        lines = [f"{spec.fail_prefix if prefix is None else prefix}{message}"]
        if spec.multiline:
            lines.append(END)
        return lines

    @staticmethod
    def _listing(lines: list[str]) -> list[str]:
        return [*lines, END]

    @staticmethod
    def _song_listing(songs: list[Song]) -> list[str]:
        return [f"SUCCESS: Found {len(songs)} songs", *(song.wire() for song in songs), END]

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def _create_account(self, command: Command) -> list[str]:
        args = command.optional_args()
        if len(args) != 3:
            raise ProtocolError("Invalid registration data")
        username, password, account_type = args
        self.context.auth.register(username, password, account_type, peer=self.peer)
        return [protocol.CREATE_SUCCESS]

    def _login(self, command: Command) -> list[str]:
        args = command.optional_args()
        if len(args) != 2:
            raise ProtocolError("Invalid credentials format")
        username, password = args

        user = self.context.auth.login(username, password, peer=self.peer)
        if self.authenticated:
            self._end_login()

        self.username = user.username
        self.account_type = user.account_type
        self.preferred_mode = PlaybackMode.SEQUENTIAL
        return [protocol.LOGIN_SUCCESS]

    def _end_login(self) -> None:
        self._close_playback()
        self.context.auth.logout(self.username, peer=self.peer)
        self.username = None
        self.account_type = None
        self.preferred_mode = PlaybackMode.SEQUENTIAL

    def _logout(self, command: Command) -> list[str]:
        if self.authenticated:
            self._end_login()
        return [protocol.LOGOUT_SUCCESS]

    def _quit(self, command: Command) -> list[str]:
        if self.authenticated:
            self._end_login()
        self.finished = True
        return [protocol.BYE]

    # ------------------------------------------------------------------
    # Library
    # ------------------------------------------------------------------

    def _get_all_songs(self, command: Command) -> list[str]:
        return self._listing([song.display() for song in self.context.catalog.all_songs()])

    def _search(self, command: Command, search: Callable[[str], list[Song]]) -> list[str]:
        (query,) = command.args(1, greedy_last=True)
        return self._listing([song.display() for song in search(query)])

    def _search_title(self, command: Command) -> list[str]:
        return self._search(command, self.context.catalog.search_title)

    def _search_artist(self, command: Command) -> list[str]:
        return self._search(command, self.context.catalog.search_artist)

    def _search_genre(self, command: Command) -> list[str]:
        return self._search(command, self.context.catalog.search_genre)

    # ------------------------------------------------------------------
    # Playlists
    # ------------------------------------------------------------------

    def _create_playlist(self, command: Command) -> list[str]:
        name = command.rest.strip()
        try:
            self.context.playlists.create_playlist(self.username, name)
        except DomainError as e:
            if e.reason == "exists":
                return [protocol.PLAYLIST_EXISTS]
            raise
        return [protocol.PLAYLIST_CREATED]

    def _create_collab_playlist(self, command: Command) -> list[str]:
        name, _, collaborators = command.rest.strip().partition(" ")
        self.context.playlists.create_collaborative_playlist(self.username, name, collaborators.strip())
        return [protocol.COLLAB_PLAYLIST_CREATED]

    def _get_playlists(self, command: Command) -> list[str]:
        return self._listing([p.name for p in self.context.playlists.get_playlists(self.username)])

    def _get_collab_playlists(self, command: Command) -> list[str]:
        entries = self.context.playlists.get_collaborative_playlists(self.username)
        return self._listing([f"{name}|{owner}" for owner, name in entries])

    def _check_playlist(self, command: Command) -> list[str]:
        (name,) = command.args(1)
        if self.context.playlists.playlist_exists(self.username, name):
            return [protocol.PLAYLIST_FOUND]
        return [protocol.PLAYLIST_NOT_FOUND]

    def _get_playlist_songs(self, command: Command) -> list[str]:
        (name,) = command.args(1)
        return self._song_listing(self.context.playlists.get_playlist_songs(self.username, name))

    def _add_song(self, command: Command) -> list[str]:
        name, title = command.args(2, greedy_last=True)
        change = self.context.playlists.add_song_to_playlist(self.username, name, title)
        if not change.changed:
            return [f"INFO: Song '{change.song.title}' is already in playlist '{change.playlist}'"]
        return [f"SUCCESS: Song '{change.song.title}' added to playlist '{change.playlist}'"]

    def _remove_song(self, command: Command) -> list[str]:
        name, title = command.args(2, greedy_last=True)
        song = self.context.playlists.remove_song_from_playlist(self.username, name, title)
        return [f"SUCCESS: Song '{song.title}' removed from playlist '{name}'"]

    def _reorder_song(self, command: Command) -> list[str]:
        name, from_text, to_text = command.args(3)
        from_index = protocol.parse_index(from_text)
        to_index = protocol.parse_index(to_text)
        self.context.playlists.reorder_song(self.username, name, from_index, to_index)
        return ["SUCCESS: Song reordered"]

    def _delete_playlist(self, command: Command) -> list[str]:
        (name,) = command.args(1)
        self.context.playlists.delete_playlist(self.username, name)
        return ["SUCCESS: Playlist deleted"]

    # ------------------------------------------------------------------
    # Social
    # ------------------------------------------------------------------

    def _follow_user(self, command: Command) -> list[str]:
        (target,) = command.args(1)
        change = self.context.social.follow(self.username, target)
        if not change.changed:
            return [f"INFO: You are already following {change.target}"]
        return [f"SUCCESS: You are now following {change.target}"]

    def _unfollow_user(self, command: Command) -> list[str]:
        (target,) = command.args(1)
        change = self.context.social.unfollow(self.username, target)
        if not change.changed:
            return [f"INFO: You are not following {change.target}"]
        return [f"SUCCESS: You are no longer following {change.target}"]

    def _get_followed_users(self, command: Command) -> list[str]:
        return self._listing(self.context.social.get_followed_users(self.username))

    def _set_sharing(self, command: Command) -> list[str]:
        (value,) = command.args(1)
        enabled = protocol.parse_bool(value)
        self.context.social.set_sharing(self.username, enabled)
        return [f"SUCCESS: Playlist sharing {'enabled' if enabled else 'disabled'}"]

    def _get_shared_playlists(self, command: Command) -> list[str]:
        entries = self.context.social.get_shared_playlists(self.username)
        return self._listing([f"{name}|{owner}" for owner, name in entries])

    def _get_shared_playlist_songs(self, command: Command) -> list[str]:
        owner, name = command.args(2)
        playlist = self.context.social.get_shared_playlist(self.username, owner, name)
        return self._song_listing(list(playlist.songs))

    def _copy_shared_playlist(self, command: Command) -> list[str]:
        owner, source, new_name = command.args(3)
        copy = self.context.social.copy_shared_playlist(self.username, owner, source, new_name)
        return [f"SUCCESS: Playlist copied as '{copy.name}'"]

    def _load_shared_playlist(self, command: Command) -> list[str]:
        owner, name = command.args(2)
        playlist = self.context.social.get_shared_playlist(self.username, owner, name)
        return self._load(playlist)

    # ------------------------------------------------------------------
    # Player
    # ------------------------------------------------------------------

    def _close_playback(self) -> None:
        if self.playback is not None:
            self.playback.close()
            self.playback = None

    def _load(self, playlist: Playlist) -> list[str]:
        self._close_playback()
        self.playback = PlaybackSession(
            playlist.name,
            playlist.songs,
            mode=self.preferred_mode,
            renderer=self.context.renderer_factory(self.username or self.peer),
            rng=self.context.new_rng(),
        )
        logger.debug(f"{self.username} loaded '{playlist.name}' in {self.preferred_mode.name} mode")
        return [f"SUCCESS: Playlist loaded ({len(self.playback)} songs, {self.preferred_mode.name})"]

    def _load_playlist(self, command: Command) -> list[str]:
        (name,) = command.args(1)
        return self._load(self.context.playlists.get_playlist(self.username, name))

    def _set_playback_mode(self, command: Command) -> list[str]:
        (value,) = command.args(1)
        mode = PlaybackMode.parse(value)

        notice = None
        if mode is None:
            notice = f"Unknown playback mode '{value}'"
        elif mode is PlaybackMode.SHUFFLE and not CAPABILITIES[self.account_type].shuffle_allowed:
            notice = "Shuffle requires a premium account"

        self.preferred_mode = PlaybackMode.SEQUENTIAL if notice else mode
        if self.playback is not None:
            self.playback.set_mode(self.preferred_mode)

        if notice:
            return [f"INFO: {notice}, using {PlaybackMode.SEQUENTIAL.name}"]
        return [f"SUCCESS: Playback mode set to {self.preferred_mode.name}"]

    def _player(self, action: Callable[[PlaybackSession], PlayerStatus]) -> list[str]:
        if self.playback is None:
            raise DomainError(protocol.NO_PLAYLIST_LOADED, reason="invalid")
        return [action(self.playback).format()]

    def _player_play(self, command: Command) -> list[str]:
        return self._player(PlaybackSession.play)

    def _player_pause(self, command: Command) -> list[str]:
        return self._player(PlaybackSession.pause)

    def _player_stop(self, command: Command) -> list[str]:
        return self._player(PlaybackSession.stop)

    def _player_next(self, command: Command) -> list[str]:
        return self._player(PlaybackSession.next)

    def _player_prev(self, command: Command) -> list[str]:
        return self._player(PlaybackSession.previous)

    def _player_status(self, command: Command) -> list[str]:
        return self._player(PlaybackSession.status)

    def _player_exit(self, command: Command) -> list[str]:
        if self.playback is None:
            raise DomainError(protocol.NO_PLAYLIST_LOADED, reason="invalid")
        self._close_playback()
        return ["SUCCESS: Exited player"]
