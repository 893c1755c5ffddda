"""Tests for the JSON user store"""

import json
import threading

import pytest

from playdeck.catalog.models import Song
from playdeck.core.exceptions import DomainError, PersistenceError
from playdeck.core.store import UserStore
from playdeck.domain.models import AccountType, CollaborativePlaylist, Playlist, User


def sample_users():
    alice = User("alice", "hash-a", AccountType.FREE)
    alice.playlists.append(Playlist("Drive", [Song("Ciel", "GIMS", "Rap", "Hip-Hop", 306)]))
    alice.follow("bob")

    bob = User("Bob", "hash-b", AccountType.PREMIUM, share_playlists_publicly=True)
    bob.playlists.append(CollaborativePlaylist("Party", owner="Bob", collaborators=["alice"]))
    return [alice, bob]


def read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestRoundTrip:

    def test_missing_store_starts_empty(self, store):
        assert store.load_all() == []
        assert read_json(store.path) == []

    def test_save_and_load(self, store):
        store.save_all(sample_users())
        users = store.load_all()

        assert [u.username for u in users] == ["alice", "Bob"]
        assert users[0].playlists[0].songs[0].title == "Ciel"
        assert users[0].followed_users == ["bob"]
        assert isinstance(users[1].playlists[0], CollaborativePlaylist)
        assert users[1].playlists[0].collaborators == ["alice"]
        assert users[1].share_playlists_publicly is True

    def test_save_of_load_is_idempotent(self, store):
        """save_all(load_all()) leaves the JSON content unchanged"""
        store.save_all(sample_users())
        first = read_json(store.path)

        store.save_all(store.load_all())
        assert read_json(store.path) == first

    def test_hand_written_store_survives_rewrite(self, store):
        records = [
            {
                "username": "alice",
                "passwordHash": "hash-a",
                "accountType": "free",
                "sharePlaylistsPublicly": False,
                "playlists": [{
                    "name": "Drive",
                    "songs": [{
                        "title": "Ciel", "artist": "GIMS", "album": "Rap",
                        "genre": "Hip-Hop", "duration": 306, "filePath": "/music/ciel.mp3",
                    }],
                }],
                "followedUsers": ["Bob"],
            },
            {
                "username": "Bob",
                "passwordHash": "hash-b",
                "accountType": "premium",
                "sharePlaylistsPublicly": True,
                "playlists": [{
                    "name": "Party",
                    "type": "collaborative",
                    "owner": "Bob",
                    "collaborators": ["alice"],
                    "songs": [],
                }],
            },
        ]
        store.path.write_text(json.dumps(records), encoding="utf-8")

        store.save_all(store.load_all())
        assert read_json(store.path) == records

    def test_empty_followed_users_is_omitted(self, store):
        store.path.write_text(json.dumps([{
            "username": "alice", "passwordHash": "h", "accountType": "free",
            "sharePlaylistsPublicly": False, "followedUsers": [],
        }]), encoding="utf-8")

        store.save_all(store.load_all())
        assert "followedUsers" not in read_json(store.path)[0]

    def test_record_layout(self, store):
        store.save_all(sample_users())
        alice, bob = read_json(store.path)

        assert alice["username"] == "alice"
        assert alice["passwordHash"] == "hash-a"
        assert alice["accountType"] == "free"
        assert alice["followedUsers"] == ["bob"]
        assert alice["playlists"][0] == {
            "name": "Drive",
            "songs": [{"title": "Ciel", "artist": "GIMS", "album": "Rap", "genre": "Hip-Hop", "duration": 306}],
        }
        assert "followedUsers" not in bob
        assert bob["playlists"][0]["type"] == "collaborative"
        assert bob["playlists"][0]["owner"] == "Bob"

    def test_invalid_records_are_skipped(self, store):
        store.path.write_text(json.dumps([
            {"username": "alice", "passwordHash": "h", "accountType": "free"},
            {"username": "", "passwordHash": "h", "accountType": "free"},
            {"username": "carol", "passwordHash": "h", "accountType": "gold"},
            {"username": "ALICE", "passwordHash": "h2", "accountType": "premium"},
            "not an object",
        ]), encoding="utf-8")

        assert [u.username for u in store.load_all()] == ["alice"]

    def test_duplicate_playlists_are_skipped(self, store):
        store.path.write_text(json.dumps([{
            "username": "alice", "passwordHash": "h", "accountType": "premium",
            "playlists": [{"name": "Drive", "songs": []}, {"name": "drive", "songs": []}, {"songs": []}],
        }]), encoding="utf-8")

        assert [p.name for p in store.load_all()[0].playlists] == ["Drive"]


class TestCrashSafety:
    """A damaged store is recovered from the backup written by the previous save"""

    def test_backup_written_on_second_save(self, store):
        store.save_all([User("alice", "h1", AccountType.FREE)])
        assert not store.backup_path.exists()

        store.save_all([User("alice", "h1", AccountType.FREE), User("bob", "h2", AccountType.FREE)])
        assert [r["username"] for r in read_json(store.backup_path)] == ["alice"]

    def test_corrupt_store_restored_from_backup(self, store):
        store.save_all([User("alice", "h1", AccountType.FREE)])
        store.save_all([User("alice", "h1", AccountType.FREE), User("bob", "h2", AccountType.FREE)])

        store.path.write_text('[{"username": "alice", "passw', encoding="utf-8")

        assert [u.username for u in store.load_all()] == ["alice"]
        assert [r["username"] for r in read_json(store.path)] == ["alice"]

    def test_empty_store_restored_from_backup(self, store):
        store.save_all([User("alice", "h1", AccountType.FREE)])
        store.save_all([User("bob", "h2", AccountType.FREE)])
        store.path.write_text("", encoding="utf-8")

        assert [u.username for u in store.load_all()] == ["alice"]

    def test_corrupt_store_without_backup_starts_empty(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load_all() == []
        assert read_json(store.path) == []

    def test_stale_temp_file_discarded_on_open(self, temp_dir):
        path = temp_dir / "users.json"
        first = UserStore(path)
        first.save_all([User("alice", "h1", AccountType.FREE)])

        # A crash mid-save leaves a partial temp file next to the intact store
        first.temp_path.write_text('[{"username": "bo', encoding="utf-8")

        second = UserStore(path)
        assert not second.temp_path.exists()
        assert [u.username for u in second.load_all()] == ["alice"]

    def test_failed_save_keeps_previous_state(self, store, monkeypatch):
        store.save_all([User("alice", "h1", AccountType.FREE)])

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("playdeck.core.store.os.replace", broken_replace)
        with pytest.raises(PersistenceError):
            store.save_all([User("bob", "h2", AccountType.FREE)])

        assert not store.temp_path.exists()
        assert [u.username for u in store.load_all()] == ["alice"]


class TestTransactions:

    def test_transaction_commits(self, store):
        with store.transaction() as users:
            users.append(User("alice", "h", AccountType.FREE))
        assert store.exists("ALICE")

    def test_transaction_rolls_back_on_error(self, store):
        store.add_user(User("alice", "h", AccountType.FREE))

        with pytest.raises(RuntimeError):
            with store.transaction() as users:
                users.append(User("bob", "h", AccountType.FREE))
                raise RuntimeError("boom")

        assert not store.exists("bob")

    def test_modify_unknown_user(self, store):
        with pytest.raises(DomainError) as exc_info:
            store.modify("ghost", lambda user, users: None)
        assert exc_info.value.reason == "user_not_found"

    def test_concurrent_modifications_are_not_lost(self, store):
        """Each thread adds its own playlist; every addition survives"""
        store.add_user(User("alice", "h", AccountType.PREMIUM))

        def add(index):
            store.modify("alice", lambda user, users: user.playlists.append(Playlist(f"P{index}")))

        threads = [threading.Thread(target=add, args=(i,)) for i in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        names = {p.name for p in store.get_by_username("alice").playlists}
        assert names == {f"P{i}" for i in range(10)}


class TestSingleUserHelpers:

    def test_add_user_upserts(self, store):
        store.add_user(User("alice", "h1", AccountType.FREE))
        store.add_user(User("Alice", "h2", AccountType.PREMIUM))

        users = store.load_all()
        assert len(users) == 1
        assert users[0].password_hash == "h2"

    def test_update_user(self, store):
        store.add_user(User("alice", "h1", AccountType.FREE))
        assert store.update_user(User("alice", "h3", AccountType.FREE))
        assert store.get_by_username("alice").password_hash == "h3"
        assert not store.update_user(User("ghost", "h", AccountType.FREE))

    def test_authenticate(self, store):
        store.add_user(User("alice", "h1", AccountType.FREE))
        assert store.authenticate("alice", "h1")
        assert not store.authenticate("alice", "h2")
        assert not store.authenticate("ghost", "h1")

    def test_verify_report(self, store):
        store.save_all(sample_users())
        report = store.verify()

        assert report.valid_on_disk
        assert report.users == 2
        assert report.playlists == 2
        assert report.collaborative_playlists == 1
        assert report.songs == 1
