"""Unit tests for JsonSessionStore.

Each test uses a real file under tmp_path; a second store instance on the
same path is used whenever the on-disk state must be checked, so the
in-memory document cache cannot hide a missing write.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Callable
from pathlib import Path

import pytest

from blockcrack.adapters.store import JsonSessionStore
from blockcrack.core.exceptions import CorruptDatabase, UnsupportedAlgorithmError
from blockcrack.core.models import BlockEntry, CandidateCursor, Checkpoint, CrackedDomain


EVIL = hashlib.sha256(b"evil.example").digest()


@pytest.mark.store
@pytest.mark.tra("Storage.JsonSessionStore")
@pytest.mark.tier(1)
class TestJsonSessionStore:
    """Tests for loading, saving and importing."""

    def test_missing_database_is_empty_session(self, tmp_path: Path) -> None:
        """No file yet means an empty session; nothing is written by load()."""
        store = JsonSessionStore(tmp_path / "session.json", algorithm="sha1")

        session = store.load()

        assert not store.exists()
        assert session.algorithm == "sha1"
        assert len(session.targets) == 0

    def test_unsupported_algorithm_raises(self, tmp_path: Path) -> None:
        """The store refuses to create a session for an unknown algorithm."""
        with pytest.raises(UnsupportedAlgorithmError):
            JsonSessionStore(tmp_path / "session.json", algorithm="crc32")

    def test_import_persists_session(
        self, tmp_path: Path, make_entry: Callable[..., BlockEntry]
    ) -> None:
        """Imported targets, plaintext cracks and block lists survive reload."""
        path = tmp_path / "db" / "session.json"
        store = JsonSessionStore(path)

        report = store.import_block_entries(
            [
                make_entry("a.social", "evil.example"),
                make_entry("b.social", "spam.example", "sp*m.example", comment="spam"),
            ]
        )

        assert report.added == 2
        assert report.published == 1

        session = JsonSessionStore(path).load()
        assert session.outstanding_count == 1
        assert session.known_domains() == ["evil.example"]
        assert session.targets.patterns() == {"sp*m.example"}
        assert session.blocklists["b.social"][0].comment == "spam"

    def test_reimport_writes_identical_bytes(
        self, session_store: JsonSessionStore, make_entry: Callable[..., BlockEntry]
    ) -> None:
        """Importing the same block list twice leaves the file unchanged."""
        entries = [
            make_entry("a.social", "evil.example"),
            make_entry("a.social", "spam.example", "sp*m.example"),
        ]
        session_store.import_block_entries(entries)
        before = session_store.path.read_bytes()

        session_store.import_block_entries(entries)

        assert session_store.path.read_bytes() == before

    def test_save_and_load_keep_cursors_and_cracks(
        self, session_store: JsonSessionStore, make_entry: Callable[..., BlockEntry]
    ) -> None:
        """A saved session reloads with the same cursors and crack records."""
        session_store.import_block_entries(
            [make_entry("a.social", "evil.example", "ev*l.example")]
        )
        session = session_store.load()
        session.cursors["wildcard"] = CandidateCursor(
            "wildcard", position=21, visited=frozenset({"a*.example"}), current="ev*l.example"
        )
        session.record_crack(CrackedDomain(EVIL, "sha256", "evil.example", "wildcard"))

        session_store.save(session)
        reloaded = JsonSessionStore(session_store.path).load()

        assert reloaded.cursors == session.cursors
        assert reloaded.cracked == session.cracked
        assert reloaded.outstanding_count == 0
        assert reloaded.created_at == session.created_at

    def test_document_format(
        self, session_store: JsonSessionStore, make_entry: Callable[..., BlockEntry]
    ) -> None:
        """The file is a versioned JSON document keyed by hex digest."""
        session_store.import_block_entries(
            [make_entry("a.social", "evil.example", "ev*l.example")]
        )

        document = json.loads(session_store.path.read_text())

        assert document["version"] == 1
        assert document["algorithm"] == "sha256"
        assert document["targets"]["sha256"][EVIL.hex()] == {
            "sources": ["a.social"],
            "patterns": ["ev*l.example"],
            "outstanding": True,
        }


@pytest.mark.store
@pytest.mark.tra("Storage.JsonSessionStore.Checkpoint")
@pytest.mark.tier(1)
class TestJsonSessionStoreCheckpoint:
    """Tests for checkpoint application and durability."""

    def test_checkpoint_applies_delta(
        self, session_store: JsonSessionStore, make_entry: Callable[..., BlockEntry]
    ) -> None:
        """Cursors, cracks and retirements from a checkpoint reach the disk."""
        session_store.import_block_entries(
            [make_entry("a.social", "evil.example", "ev*l.example")]
        )
        cracked = CrackedDomain(EVIL, "sha256", "evil.example", "wildcard")

        session_store.checkpoint(
            Checkpoint(
                cursors=(CandidateCursor("wildcard", position=22, current="ev*l.example"),),
                retired=frozenset({cracked.key}),
                cracked=(cracked,),
            )
        )

        session = JsonSessionStore(session_store.path).load()
        assert session.outstanding_count == 0
        assert session.cracked[cracked.key].provenance == "wildcard"
        assert session.cursor("wildcard").position == 22
        document = json.loads(session_store.path.read_text())
        assert "checkpointed_at" in document

    def test_cracked_records_are_append_only(
        self, session_store: JsonSessionStore, make_entry: Callable[..., BlockEntry]
    ) -> None:
        """A later checkpoint cannot replace an existing crack record."""
        session_store.import_block_entries(
            [make_entry("a.social", "evil.example", "ev*l.example")]
        )
        first = CrackedDomain(EVIL, "sha256", "evil.example", "wildcard")
        second = CrackedDomain(EVIL, "sha256", "evil.example", "known")

        session_store.checkpoint(Checkpoint(cracked=(first,)))
        session_store.checkpoint(Checkpoint(cracked=(second,)))

        session = JsonSessionStore(session_store.path).load()
        assert session.cracked[first.key].provenance == "wildcard"

    def test_failed_write_leaves_previous_document(
        self,
        session_store: JsonSessionStore,
        make_entry: Callable[..., BlockEntry],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A crash before the rename keeps the old file and no temp files."""
        session_store.import_block_entries(
            [make_entry("a.social", "evil.example", "ev*l.example")]
        )
        before = session_store.path.read_bytes()

        def fail_replace(src: object, dst: object) -> None:
            raise OSError("simulated crash")

        monkeypatch.setattr(os, "replace", fail_replace)

        with pytest.raises(OSError, match="simulated crash"):
            session_store.checkpoint(
                Checkpoint(cursors=(CandidateCursor("wildcard", position=5),))
            )

        monkeypatch.undo()
        assert session_store.path.read_bytes() == before
        assert list(session_store.path.parent.glob("*.tmp")) == []
        assert session_store.load().cursors == {}


@pytest.mark.store
@pytest.mark.tra("Storage.JsonSessionStore.Corrupt")
@pytest.mark.tier(1)
class TestCorruptDatabase:
    """Tests for unreadable session files."""

    @pytest.mark.parametrize(
        ("content", "message"),
        [
            ("{not json", "Cannot read"),
            ('{"version": 2}', "Unsupported session database format"),
            ("[]", "Unsupported session database format"),
            ('{"version": 1}', "malformed"),
        ],
    )
    def test_corrupt_file_raises(self, tmp_path: Path, content: str, message: str) -> None:
        """Anything but a valid version 1 document is CorruptDatabase."""
        path = tmp_path / "session.json"
        path.write_text(content)

        with pytest.raises(CorruptDatabase, match=message) as exc_info:
            JsonSessionStore(path).load()

        assert exc_info.value.path == path
        assert "blockcrack fetch" in exc_info.value.recovery_hint

    def test_bad_digest_in_document(
        self, session_store: JsonSessionStore, make_entry: Callable[..., BlockEntry]
    ) -> None:
        """A digest that no longer decodes is reported as corruption."""
        session_store.import_block_entries(
            [make_entry("a.social", "evil.example", "ev*l.example")]
        )
        document = json.loads(session_store.path.read_text())
        document["targets"]["sha256"]["zz"] = document["targets"]["sha256"].pop(EVIL.hex())
        session_store.path.write_text(json.dumps(document))

        with pytest.raises(CorruptDatabase, match="malformed"):
            JsonSessionStore(session_store.path).load()
