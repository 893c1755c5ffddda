"""
Wire protocol for playdeck.

Requests and responses are newline-delimited UTF-8 lines. A request is a
keyword (case-insensitive) followed by arguments separated by single
spaces; arguments keep their case. The last argument of some commands
(song titles) may itself contain spaces.

Multi-line responses end with a line containing exactly END. When such a
command fails, the error line is followed by END as well, so a client
reading up to the sentinel never blocks.

Every command is described by a CommandSpec: whether it needs a logged-in
session, whether its response is multi-line, and the prefix used for
its failure lines (most use "ERROR: ", account and playlist creation keep
their own *_FAIL keywords).
"""

from dataclasses import dataclass

from playdeck.core.exceptions import ProtocolError


END = "END"
ERROR_PREFIX = "ERROR: "

MAX_LINE_BYTES = 8192

# Response keywords
CREATE_SUCCESS = "CREATE_SUCCESS"
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGOUT_SUCCESS = "LOGOUT_SUCCESS"
BYE = "BYE"
PLAYLIST_CREATED = "PLAYLIST_CREATED"
PLAYLIST_EXISTS = "PLAYLIST_EXISTS"
COLLAB_PLAYLIST_CREATED = "COLLAB_PLAYLIST_CREATED"
PLAYLIST_FOUND = "PLAYLIST_FOUND"
PLAYLIST_NOT_FOUND = "PLAYLIST_NOT_FOUND"

NOT_LOGGED_IN = "Not logged in"
NO_PLAYLIST_LOADED = "No playlist loaded"
SERVER_ERROR = "Server error processing your request"
SAVE_FAILED = "Could not save changes, please try again"
LINE_TOO_LONG = "Line too long"


@dataclass(frozen=True)
class CommandSpec:
    """
    Static description of one protocol command.

    Attributes:
        keyword: Upper-case command keyword.
        usage: Argument synopsis shown in usage errors.
        requires_auth: False only for LOGIN, CREATE, LOGOUT and QUIT.
        multiline: True if the response is data lines followed by END.
        fail_prefix: Prefix of failure lines for this command.
    """
    keyword: str
    usage: str = ""
    requires_auth: bool = True
    multiline: bool = False
    fail_prefix: str = ERROR_PREFIX

    def usage_error(self) -> ProtocolError:
        synopsis = f"{self.keyword} {self.usage}".strip()
        return ProtocolError(f"Usage: {synopsis}", details={"command": self.keyword})


_SPECS = (
    # Account
    CommandSpec("CREATE", "<username> <password> <free|premium>", requires_auth=False,
                fail_prefix="CREATE_FAIL "),
    CommandSpec("LOGIN", "<username> <password>", requires_auth=False, fail_prefix="LOGIN_FAIL "),
    CommandSpec("LOGOUT", requires_auth=False),
    CommandSpec("QUIT", requires_auth=False),

    # Library
    CommandSpec("GET_ALL_SONGS", multiline=True),
    CommandSpec("SEARCH_TITLE", "<query>", multiline=True),
    CommandSpec("SEARCH_ARTIST", "<query>", multiline=True),
    CommandSpec("SEARCH_GENRE", "<genre>", multiline=True),

    # Playlists
    CommandSpec("CREATE_PLAYLIST", "<name>", fail_prefix="CREATE_PLAYLIST_FAIL "),
    CommandSpec("CREATE_COLLAB_PLAYLIST", "<name> [user1,user2,...]",
                fail_prefix="CREATE_COLLAB_PLAYLIST_FAIL "),
    CommandSpec("GET_PLAYLISTS", multiline=True),
    CommandSpec("GET_COLLAB_PLAYLISTS", multiline=True),
    CommandSpec("CHECK_PLAYLIST", "<name>"),
    CommandSpec("GET_PLAYLIST_SONGS", "<name>", multiline=True),
    CommandSpec("ADD_SONG_TO_PLAYLIST", "<name> <title>"),
    CommandSpec("REMOVE_SONG_FROM_PLAYLIST", "<name> <title>"),
    CommandSpec("REORDER_PLAYLIST_SONG", "<name> <from_index> <to_index>"),
    CommandSpec("DELETE_PLAYLIST", "<name>"),

    # Social
    CommandSpec("FOLLOW_USER", "<username>"),
    CommandSpec("UNFOLLOW_USER", "<username>"),
    CommandSpec("GET_FOLLOWED_USERS", multiline=True),
    CommandSpec("SET_PLAYLIST_SHARING", "<true|false>"),
    CommandSpec("GET_SHARED_PLAYLISTS", multiline=True),
    CommandSpec("GET_SHARED_PLAYLIST_SONGS", "<owner> <name>", multiline=True),
    CommandSpec("COPY_SHARED_PLAYLIST", "<owner> <source> <new_name>"),
    CommandSpec("LOAD_SHARED_PLAYLIST", "<owner> <name>"),

    # Player
    CommandSpec("LOAD_PLAYLIST", "<name>"),
    CommandSpec("SET_PLAYBACK_MODE", "<sequential|shuffle|repeat|1|2|3>"),
    CommandSpec("PLAYER_PLAY"),
    CommandSpec("PLAYER_PAUSE"),
    CommandSpec("PLAYER_STOP"),
    CommandSpec("PLAYER_NEXT"),
    CommandSpec("PLAYER_PREV"),
    CommandSpec("PLAYER_STATUS"),
    CommandSpec("PLAYER_EXIT"),
)

COMMANDS: dict[str, CommandSpec] = {spec.keyword: spec for spec in _SPECS}


@dataclass(frozen=True)
class Command:
    """
    One parsed request line.

    Attributes:
        keyword: Upper-cased keyword.
        rest: Everything after the first space, unchanged (may be empty).
    """
    keyword: str
    rest: str = ""

    @property
    def spec(self) -> CommandSpec | None:
        return COMMANDS.get(self.keyword)

    def args(self, count: int, greedy_last: bool = False) -> list[str]:
        """
        Split the arguments into exactly count parts.

        Args:
            count: Number of arguments the command takes.
            greedy_last: If True the last argument takes the rest of the
                         line, spaces included (song titles).

        Raises:
            ProtocolError: With the command's usage line if the argument
                           count is wrong.
        """
        spec = self.spec or CommandSpec(self.keyword)
        text = self.rest.strip()
        if count == 0:
            if text:
                raise spec.usage_error()
            return []

        if not text:
            raise spec.usage_error()

        if greedy_last:
            parts = text.split(" ", count - 1)
            if len(parts) != count or not all(part.strip() for part in parts):
                raise spec.usage_error()
            return [part.strip() for part in parts]

        parts = text.split()
        if len(parts) != count:
            raise spec.usage_error()
        return parts

    def optional_args(self) -> list[str]:
        return self.rest.split()


def parse_command(line: str) -> Command:
    """
    Parse a request line (without its newline).

    Raises:
        ProtocolError: For an empty line.
    """
    line = line.strip("\r\n")
    if not line.strip():
        raise ProtocolError("Empty command")

    keyword, _, rest = line.strip().partition(" ")
    return Command(keyword=keyword.upper(), rest=rest)


def parse_bool(value: str) -> bool:
    """Parse true/false, on/off, yes/no, 1/0 (case-insensitive)."""
    lowered = value.strip().lower()
    if lowered in ("true", "on", "yes", "1"):
        return True
    if lowered in ("false", "off", "no", "0"):
        return False
    raise ProtocolError("Expected true or false", details={"value": value})


def parse_index(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ProtocolError("Indices must be whole numbers", details={"value": value}) from None
