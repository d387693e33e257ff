"""JSON file session store implementing SessionStorePort."""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from blockcrack.core.codec import DEFAULT_ALGORITHM, codec_for
from blockcrack.core.exceptions import BlockcrackError, CorruptDatabase
from blockcrack.core.models import (
    BlockEntry,
    CandidateCursor,
    Checkpoint,
    CrackedDomain,
    ImportReport,
    TargetEntry,
)
from blockcrack.core.session import Session
from blockcrack.core.targets import TargetDigestSet


if TYPE_CHECKING:
    from collections.abc import Iterable


logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

Document = dict[str, Any]


class JsonSessionStore:
    """Session persisted as a single JSON document.

    Every write goes to a temporary file in the same directory, is flushed
    and fsynced, then renamed over the database with ``os.replace``. A crash
    at any point leaves either the previous document or the new one.

    The store keeps its own copy of the document, separate from any Session
    handed out by ``load()``, so a checkpoint written from a background
    thread never reads a Session the engine is mutating.

    Attributes:
        path: Location of the database file.
        algorithm: Algorithm for a session created from scratch.
    """

    def __init__(self, path: Path, algorithm: str = DEFAULT_ALGORITHM) -> None:
        """Initialize the store.

        Args:
            path: Database file. Created on first write.
            algorithm: Algorithm used when no database exists yet.
        """
        codec_for(algorithm)
        self.path = path
        self.algorithm = algorithm
        self._lock = threading.Lock()
        self._document: Document | None = None

    def exists(self) -> bool:
        """True if the database file is present."""
        return self.path.exists()

    def load(self) -> Session:
        """Return a fresh Session built from the stored document.

        Raises:
            CorruptDatabase: If the file is not a valid version 1 document.
        """
        with self._lock:
            return _session_from_document(self._read(), self.path)

    def save(self, session: Session) -> None:
        """Replace the stored document with a full snapshot of ``session``."""
        document = _document_from_session(session)
        with self._lock:
            self._write(document)

    def import_block_entries(self, entries: Iterable[BlockEntry]) -> ImportReport:
        """Merge entries into the stored session and persist the result."""
        with self._lock:
            session = _session_from_document(self._read(), self.path)
            report = session.import_block_entries(entries)
            self._write(_document_from_session(session))
        logger.debug("Imported into %s: %s", self.path, report)
        return report

    def checkpoint(self, checkpoint: Checkpoint) -> None:
        """Apply a checkpoint to the stored document and persist it.

        Cracked records are append-only: a record already stored for the
        same digest is kept.
        """
        with self._lock:
            document = copy.deepcopy(self._read())
            for cursor in checkpoint.cursors:
                document["cursors"][cursor.generator_id] = _cursor_to_json(cursor)
            for cracked in checkpoint.cracked:
                by_digest = document["cracked"].setdefault(cracked.algorithm, {})
                digest = cracked.digest.hex()
                if digest not in by_digest:
                    by_digest[digest] = _cracked_to_json(cracked)
                _mark_retired(document, cracked.algorithm, digest)
            for algorithm, raw_digest in checkpoint.retired:
                _mark_retired(document, algorithm, raw_digest.hex())
            document["checkpointed_at"] = checkpoint.taken_at.isoformat()
            self._write(document)

    def _read(self) -> Document:
        if self._document is not None:
            return self._document
        if not self.path.exists():
            return _document_from_session(Session(algorithm=self.algorithm))
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptDatabase(
                f"Cannot read session database {self.path}: {e}",
                path=self.path,
                cause=e,
            ) from e
        if not isinstance(data, dict) or data.get("version") != FORMAT_VERSION:
            raise CorruptDatabase(
                f"Unsupported session database format in {self.path}",
                path=self.path,
            )
        # Fail now rather than on the first checkpoint
        _session_from_document(data, self.path)
        self._document = data
        return data

    def _write(self, document: Document) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        )
        tmp_path = Path(tmp.name)
        try:
            with tmp:
                json.dump(document, tmp, indent=1, sort_keys=True)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        self._document = document


def _mark_retired(document: Document, algorithm: str, digest: str) -> None:
    target = document["targets"].get(algorithm, {}).get(digest)
    if target is not None:
        target["outstanding"] = False


def _cursor_to_json(cursor: CandidateCursor) -> dict[str, Any]:
    return {
        "position": cursor.position,
        "visited": sorted(cursor.visited),
        "current": cursor.current,
        "exhausted": cursor.exhausted,
    }


def _cracked_to_json(cracked: CrackedDomain) -> dict[str, Any]:
    return {
        "domain": cracked.domain,
        "provenance": cracked.provenance,
        "cracked_at": cracked.cracked_at.isoformat(),
    }


def _document_from_session(session: Session) -> Document:
    targets: dict[str, dict[str, Any]] = {}
    for entry in session.targets:
        targets.setdefault(entry.algorithm, {})[entry.digest.hex()] = {
            "sources": sorted(entry.sources),
            "patterns": sorted(entry.patterns),
            "outstanding": session.targets.is_outstanding(entry.algorithm, entry.digest),
        }

    cracked: dict[str, dict[str, Any]] = {}
    for record in session.cracked.values():
        cracked.setdefault(record.algorithm, {})[record.digest.hex()] = (
            _cracked_to_json(record)
        )

    return {
        "version": FORMAT_VERSION,
        "algorithm": session.algorithm,
        "created_at": session.created_at.isoformat(),
        "blocklists": {
            instance: [
                {
                    "digest": e.digest,
                    "algorithm": e.algorithm,
                    "domain": e.domain,
                    "severity": e.severity,
                    "comment": e.comment,
                }
                for e in entries
            ]
            for instance, entries in session.blocklists.items()
        },
        "targets": targets,
        "cracked": cracked,
        "cursors": {
            generator_id: _cursor_to_json(cursor)
            for generator_id, cursor in session.cursors.items()
        },
    }


def _session_from_document(document: Document, path: Path) -> Session:
    try:
        algorithm = document["algorithm"]
        entries = []
        outstanding = set()
        for target_algorithm, by_digest in document["targets"].items():
            codec = codec_for(target_algorithm)
            for digest_text, data in by_digest.items():
                digest = codec.decode(digest_text)
                entries.append(
                    TargetEntry(
                        digest=digest,
                        algorithm=target_algorithm,
                        sources=frozenset(data["sources"]),
                        patterns=frozenset(data["patterns"]),
                    )
                )
                if data["outstanding"]:
                    outstanding.add((target_algorithm, digest))

        targets = TargetDigestSet()
        for entry in entries:
            targets.add(entry, outstanding=entry.key in outstanding)

        cracked = {}
        for cracked_algorithm, by_digest in document["cracked"].items():
            codec = codec_for(cracked_algorithm)
            for digest_text, data in by_digest.items():
                record = CrackedDomain(
                    digest=codec.decode(digest_text),
                    algorithm=cracked_algorithm,
                    domain=data["domain"],
                    provenance=data["provenance"],
                    cracked_at=datetime.fromisoformat(data["cracked_at"]),
                )
                cracked[record.key] = record
                targets.retire(record.algorithm, record.digest)

        cursors = {
            generator_id: CandidateCursor(
                generator_id,
                position=data["position"],
                visited=frozenset(data["visited"]),
                current=data["current"],
                exhausted=data["exhausted"],
            )
            for generator_id, data in document["cursors"].items()
        }

        blocklists = {
            instance: tuple(
                BlockEntry(
                    source=instance,
                    digest=e["digest"],
                    algorithm=e["algorithm"],
                    domain=e["domain"],
                    severity=e["severity"],
                    comment=e["comment"],
                )
                for e in raw_entries
            )
            for instance, raw_entries in document["blocklists"].items()
        }

        return Session(
            algorithm=algorithm,
            targets=targets,
            cracked=cracked,
            cursors=cursors,
            blocklists=blocklists,
            created_at=datetime.fromisoformat(document["created_at"]),
        )
    except (KeyError, TypeError, ValueError, AttributeError, BlockcrackError) as e:
        raise CorruptDatabase(
            f"Session database {path} is malformed: {e}",
            path=path,
            cause=e,
        ) from e
