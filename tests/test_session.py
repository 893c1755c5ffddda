"""Tests for command parsing and the session handler"""

import pytest

from playdeck.core.exceptions import PersistenceError, ProtocolError
from playdeck.server.protocol import COMMANDS, Command, parse_bool, parse_command


class TestParsing:

    def test_keyword_is_case_insensitive(self):
        command = parse_command("login Alice Secret1\r\n")
        assert command.keyword == "LOGIN"
        assert command.rest == "Alice Secret1"

    def test_empty_line(self):
        with pytest.raises(ProtocolError):
            parse_command("   \n")

    def test_greedy_last_argument(self):
        command = parse_command("ADD_SONG_TO_PLAYLIST Drive Melrose Place")
        assert command.args(2, greedy_last=True) == ["Drive", "Melrose Place"]

    def test_wrong_argument_count(self):
        with pytest.raises(ProtocolError) as exc_info:
            Command("CHECK_PLAYLIST", "a b").args(1)
        assert exc_info.value.message == "Usage: CHECK_PLAYLIST <name>"

        with pytest.raises(ProtocolError):
            Command("PLAYER_PLAY", "now").args(0)

    def test_parse_bool(self):
        assert parse_bool("TRUE") is True
        assert parse_bool("off") is False
        with pytest.raises(ProtocolError):
            parse_bool("maybe")

    def test_pre_auth_commands(self):
        assert {k for k, spec in COMMANDS.items() if not spec.requires_auth} == {"LOGIN", "CREATE", "LOGOUT", "QUIT"}


class TestGating:

    def test_unknown_command(self, session):
        assert session.handle_line("DANCE now") == ["ERROR: Unknown command DANCE"]

    def test_not_logged_in(self, session):
        assert session.handle_line("CREATE_PLAYLIST Drive") == ["ERROR: Not logged in"]
        assert session.handle_line("PLAYER_PLAY") == ["ERROR: Not logged in"]

    def test_not_logged_in_multiline_ends_with_sentinel(self, session):
        assert session.handle_line("GET_ALL_SONGS") == ["ERROR: Not logged in", "END"]

    def test_empty_line(self, session):
        assert session.handle_line("") == ["ERROR: Empty command"]

    def test_logout_and_quit_before_login(self, session):
        assert session.handle_line("LOGOUT") == ["LOGOUT_SUCCESS"]
        assert session.handle_line("quit") == ["BYE"]
        assert session.finished


class TestAccountCommands:

    def test_create_failures(self, session):
        assert session.handle_line("CREATE alice") == ["CREATE_FAIL Invalid registration data"]
        assert session.handle_line("CREATE alice secret1 gold") == ["CREATE_FAIL Invalid account type"]
        assert session.handle_line("CREATE alice abc free") == ["CREATE_FAIL Password must be at least 6 characters"]
        assert session.handle_line("CREATE alice secret1 free") == ["CREATE_SUCCESS"]
        assert session.handle_line("CREATE ALICE secret1 free") == ["CREATE_FAIL Username already exists"]

    def test_login_failures(self, session):
        session.handle_line("CREATE alice secret1 free")
        assert session.handle_line("LOGIN alice") == ["LOGIN_FAIL Invalid credentials format"]
        assert session.handle_line("LOGIN alice wrong99") == ["LOGIN_FAIL Incorrect credentials. 4 attempts remaining"]
        assert not session.authenticated

    def test_lockout_over_protocol(self, session):
        session.handle_line("CREATE alice secret1 free")
        for _ in range(4):
            session.handle_line("LOGIN alice wrong99")
        assert session.handle_line("LOGIN alice wrong99") == [
            "LOGIN_FAIL Too many failed attempts. Account locked for 15 minutes"
        ]
        assert session.handle_line("LOGIN alice secret1") == [
            "LOGIN_FAIL Account temporarily locked. Try again in 900 seconds"
        ]

    def test_logout_clears_session(self, logged_in):
        logged_in.handle_line("CREATE_PLAYLIST Drive")
        logged_in.handle_line("LOAD_PLAYLIST Drive")

        assert logged_in.handle_line("LOGOUT") == ["LOGOUT_SUCCESS"]
        assert not logged_in.authenticated
        assert logged_in.playback is None
        assert logged_in.handle_line("GET_PLAYLISTS") == ["ERROR: Not logged in", "END"]


class TestScenario:

    def test_alice_drive_ciel(self, session, renderers):
        """Register, log in, build a one-song playlist and play it"""
        assert session.handle_line("CREATE alice secret1 free") == ["CREATE_SUCCESS"]
        assert session.handle_line("LOGIN alice secret1") == ["LOGIN_SUCCESS"]
        assert session.handle_line("CREATE_PLAYLIST Drive") == ["PLAYLIST_CREATED"]
        assert session.handle_line("ADD_SONG_TO_PLAYLIST Drive Ciel") == [
            "SUCCESS: Song 'Ciel' added to playlist 'Drive'"
        ]
        assert session.handle_line("LOAD_PLAYLIST Drive") == ["SUCCESS: Playlist loaded (1 songs, SEQUENTIAL)"]
        assert session.handle_line("PLAYER_PLAY") == ["PLAYING: Ciel by GIMS (5:06)"]
        assert session.handle_line("PLAYER_NEXT") == ["INFO: End of playlist; PLAYING: Ciel by GIMS (5:06)"]
        assert session.handle_line("PLAYER_STATUS") == ["PLAYING: Ciel by GIMS (5:06)"]

        assert renderers["alice"].calls == [("play", "Ciel")]


class TestLibraryCommands:

    def test_get_all_songs(self, logged_in):
        lines = logged_in.handle_line("GET_ALL_SONGS")
        assert len(lines) == 6
        assert lines[1] == "Ciel by GIMS (5:06)"
        assert lines[-1] == "END"

    def test_search(self, logged_in):
        assert logged_in.handle_line("SEARCH_ARTIST keblack") == [
            "Mood by Keblack (4:13)",
            "Melrose Place by Keblack Ft. Guy2Bezbar (3:54)",
            "END",
        ]
        assert logged_in.handle_line("SEARCH_TITLE Melrose Place") == [
            "Melrose Place by Keblack Ft. Guy2Bezbar (3:54)",
            "END",
        ]
        assert logged_in.handle_line("SEARCH_GENRE jazz") == ["END"]

    def test_search_without_query(self, logged_in):
        assert logged_in.handle_line("SEARCH_TITLE") == ["ERROR: Usage: SEARCH_TITLE <query>", "END"]


class TestPlaylistCommands:

    def test_create_outcomes(self, logged_in):
        assert logged_in.handle_line("CREATE_PLAYLIST") == ["CREATE_PLAYLIST_FAIL Playlist name must not be empty"]
        assert logged_in.handle_line("CREATE_PLAYLIST Drive") == ["PLAYLIST_CREATED"]
        assert logged_in.handle_line("CREATE_PLAYLIST Other") == [
            "CREATE_PLAYLIST_FAIL Playlist limit reached for your account type"
        ]

    def test_playlist_exists_keyword(self, session):
        session.handle_line("CREATE bob secret1 premium")
        session.handle_line("LOGIN bob secret1")
        session.handle_line("CREATE_PLAYLIST Drive")
        assert session.handle_line("CREATE_PLAYLIST drive") == ["PLAYLIST_EXISTS"]

    def test_listing_and_check(self, logged_in):
        logged_in.handle_line("CREATE_PLAYLIST Drive")
        assert logged_in.handle_line("GET_PLAYLISTS") == ["Drive", "END"]
        assert logged_in.handle_line("CHECK_PLAYLIST drive") == ["PLAYLIST_FOUND"]
        assert logged_in.handle_line("CHECK_PLAYLIST Nope") == ["PLAYLIST_NOT_FOUND"]

    def test_playlist_songs(self, logged_in):
        logged_in.handle_line("CREATE_PLAYLIST Drive")
        logged_in.handle_line("ADD_SONG_TO_PLAYLIST Drive Ciel")

        assert logged_in.handle_line("GET_PLAYLIST_SONGS Drive") == [
            "SUCCESS: Found 1 songs",
            "Ciel|GIMS|Rap|Hip-Hop|306|",
            "END",
        ]
        assert logged_in.handle_line("GET_PLAYLIST_SONGS Nope") == ["ERROR: Playlist not found", "END"]

    def test_song_edits(self, logged_in):
        logged_in.handle_line("CREATE_PLAYLIST Drive")
        logged_in.handle_line("ADD_SONG_TO_PLAYLIST Drive Ciel")

        assert logged_in.handle_line("ADD_SONG_TO_PLAYLIST Drive ciel") == [
            "INFO: Song 'Ciel' is already in playlist 'Drive'"
        ]
        assert logged_in.handle_line("ADD_SONG_TO_PLAYLIST Drive Imaginary") == ["ERROR: Song not found in library"]
        logged_in.handle_line("ADD_SONG_TO_PLAYLIST Drive melrose")
        assert logged_in.handle_line("REORDER_PLAYLIST_SONG Drive 1 0") == ["SUCCESS: Song reordered"]
        assert logged_in.handle_line("REORDER_PLAYLIST_SONG Drive one 0") == ["ERROR: Indices must be whole numbers"]
        assert logged_in.handle_line("REORDER_PLAYLIST_SONG Drive 0 9").pop().startswith("ERROR: Invalid index")
        assert logged_in.handle_line("REMOVE_SONG_FROM_PLAYLIST Drive Ciel") == [
            "SUCCESS: Song 'Ciel' removed from playlist 'Drive'"
        ]
        assert logged_in.handle_line("GET_PLAYLIST_SONGS Drive")[1].startswith("Melrose Place|")
        assert logged_in.handle_line("DELETE_PLAYLIST Drive") == ["SUCCESS: Playlist deleted"]
        assert logged_in.handle_line("DELETE_PLAYLIST Drive") == ["ERROR: Playlist not found"]

    def test_collaborative_commands(self, session):
        session.handle_line("CREATE bob secret1 premium")
        session.handle_line("CREATE alice secret1 free")
        session.handle_line("LOGIN bob secret1")
        assert session.handle_line("CREATE_COLLAB_PLAYLIST Party alice,ghost") == ["COLLAB_PLAYLIST_CREATED"]

        session.handle_line("LOGIN alice secret1")
        assert session.handle_line("GET_COLLAB_PLAYLISTS") == ["Party|bob", "END"]
        assert session.handle_line("ADD_SONG_TO_PLAYLIST Party Mood") == [
            "SUCCESS: Song 'Mood' added to playlist 'Party'"
        ]
        assert session.handle_line("LOAD_PLAYLIST Party") == ["SUCCESS: Playlist loaded (1 songs, SEQUENTIAL)"]


class TestSocialCommands:

    @pytest.fixture
    def with_bob(self, session):
        session.handle_line("CREATE bob secret1 premium")
        session.handle_line("LOGIN bob secret1")
        session.handle_line("CREATE_PLAYLIST Chill")
        session.handle_line("ADD_SONG_TO_PLAYLIST Chill NINAO")
        session.handle_line("ADD_SONG_TO_PLAYLIST Chill Mood")
        session.handle_line("SET_PLAYLIST_SHARING true")
        session.handle_line("CREATE alice secret1 free")
        session.handle_line("LOGIN alice secret1")
        return session

    def test_follow_commands(self, with_bob):
        assert with_bob.handle_line("FOLLOW_USER bob") == ["SUCCESS: You are now following bob"]
        assert with_bob.handle_line("FOLLOW_USER BOB") == ["INFO: You are already following bob"]
        assert with_bob.handle_line("FOLLOW_USER alice") == ["ERROR: You cannot follow yourself"]
        assert with_bob.handle_line("FOLLOW_USER ghost") == ["ERROR: User not found"]
        assert with_bob.handle_line("GET_FOLLOWED_USERS") == ["bob", "END"]
        assert with_bob.handle_line("UNFOLLOW_USER bob") == ["SUCCESS: You are no longer following bob"]
        assert with_bob.handle_line("UNFOLLOW_USER bob") == ["INFO: You are not following bob"]

    def test_shared_playlists(self, with_bob):
        with_bob.handle_line("FOLLOW_USER bob")
        assert with_bob.handle_line("GET_SHARED_PLAYLISTS") == ["Chill|bob", "END"]
        assert with_bob.handle_line("GET_SHARED_PLAYLIST_SONGS bob Chill") == [
            "SUCCESS: Found 2 songs",
            "NINAO|GIMS|Rap|Hip-Hop|247|",
            "Mood|Keblack|Rap|Hip-Hop|253|",
            "END",
        ]
        assert with_bob.handle_line("LOAD_SHARED_PLAYLIST bob Chill") == [
            "SUCCESS: Playlist loaded (2 songs, SEQUENTIAL)"
        ]
        assert with_bob.handle_line("COPY_SHARED_PLAYLIST bob Chill Mine") == ["SUCCESS: Playlist copied as 'Mine'"]
        assert with_bob.handle_line("GET_PLAYLISTS") == ["Mine", "END"]

    def test_sharing_disabled(self, with_bob):
        assert with_bob.handle_line("SET_PLAYLIST_SHARING maybe") == ["ERROR: Expected true or false"]
        with_bob.handle_line("LOGIN bob secret1")
        assert with_bob.handle_line("SET_PLAYLIST_SHARING off") == ["SUCCESS: Playlist sharing disabled"]
        with_bob.handle_line("LOGIN alice secret1")
        assert with_bob.handle_line("GET_SHARED_PLAYLIST_SONGS bob Chill") == [
            "ERROR: bob does not share playlists",
            "END",
        ]


class TestPlayerCommands:

    def test_no_playlist_loaded(self, logged_in):
        for command in ("PLAYER_PLAY", "PLAYER_NEXT", "PLAYER_STATUS", "PLAYER_EXIT"):
            assert logged_in.handle_line(command) == ["ERROR: No playlist loaded"]

    def test_free_account_cannot_shuffle(self, logged_in):
        assert logged_in.handle_line("SET_PLAYBACK_MODE shuffle") == [
            "INFO: Shuffle requires a premium account, using SEQUENTIAL"
        ]
        assert logged_in.handle_line("SET_PLAYBACK_MODE loop") == [
            "INFO: Unknown playback mode 'loop', using SEQUENTIAL"
        ]
        assert logged_in.handle_line("SET_PLAYBACK_MODE 3") == ["SUCCESS: Playback mode set to REPEAT"]

    def test_mode_applies_to_next_load_and_loaded_playlist(self, session):
        session.handle_line("CREATE bob secret1 premium")
        session.handle_line("LOGIN bob secret1")
        session.handle_line("CREATE_PLAYLIST Mix")
        for title in ("Ciel", "NINAO", "Mood"):
            session.handle_line(f"ADD_SONG_TO_PLAYLIST Mix {title}")

        assert session.handle_line("SET_PLAYBACK_MODE repeat") == ["SUCCESS: Playback mode set to REPEAT"]
        assert session.handle_line("LOAD_PLAYLIST Mix") == ["SUCCESS: Playlist loaded (3 songs, REPEAT)"]
        for _ in range(3):
            session.handle_line("PLAYER_NEXT")
        assert session.handle_line("PLAYER_NEXT") == ["STOPPED: Ciel by GIMS (5:06)"]

        assert session.handle_line("SET_PLAYBACK_MODE SHUFFLE") == ["SUCCESS: Playback mode set to SHUFFLE"]
        assert session.playback.mode.name == "SHUFFLE"
        assert session.playback.current_song.title == "Ciel"

    def test_empty_playlist(self, logged_in):
        logged_in.handle_line("CREATE_PLAYLIST Drive")
        assert logged_in.handle_line("LOAD_PLAYLIST Drive") == ["SUCCESS: Playlist loaded (0 songs, SEQUENTIAL)"]
        assert logged_in.handle_line("PLAYER_PLAY") == ["INFO: Playlist is empty"]

    def test_exit_player(self, logged_in, renderers):
        logged_in.handle_line("CREATE_PLAYLIST Drive")
        logged_in.handle_line("ADD_SONG_TO_PLAYLIST Drive Ciel")
        logged_in.handle_line("LOAD_PLAYLIST Drive")
        logged_in.handle_line("PLAYER_PLAY")

        assert logged_in.handle_line("PLAYER_EXIT") == ["SUCCESS: Exited player"]
        assert logged_in.playback is None
        assert renderers["alice"].calls[-1] == ("stop", "Ciel")

    def test_load_missing_playlist(self, logged_in):
        assert logged_in.handle_line("LOAD_PLAYLIST Nope") == ["ERROR: Playlist not found"]


class TestFailureHandling:

    def test_persistence_error(self, logged_in, monkeypatch):
        def failing_save(users):
            raise PersistenceError("disk full")

        monkeypatch.setattr(logged_in.context.store, "save_all", failing_save)
        assert logged_in.handle_line("CREATE_PLAYLIST Drive") == [
            "CREATE_PLAYLIST_FAIL Could not save changes, please try again"
        ]

    def test_unexpected_error_keeps_session(self, logged_in, monkeypatch):
        def broken(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr(logged_in.context.catalog, "search_title", broken)
        assert logged_in.handle_line("SEARCH_TITLE x") == ["ERROR: Server error processing your request", "END"]
        assert logged_in.handle_line("GET_PLAYLISTS") == ["END"]
