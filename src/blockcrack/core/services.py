"""Core domain services for blockcrack."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from blockcrack.config import CrackSettings
from blockcrack.core.candidates import (
    CandidateSource,
    DomainListGenerator,
    NumericSuffixGenerator,
    VariantGenerator,
    WildcardGenerator,
    WordlistGenerator,
)
from blockcrack.core.engine import MatchEngine
from blockcrack.core.exceptions import AlgorithmMismatchError
from blockcrack.core.fetch_operations import FetchSummary, fetch_and_import
from blockcrack.core.models import (
    BlockEntry,
    CrackResult,
    ImportReport,
    InstanceSummary,
    ReportRow,
)
from blockcrack.core.ports import (
    BlocklistFetcherPort,
    CandidateGenerator,
    ExecutorPort,
    NullProgressReporter,
    ProgressReporter,
    SessionStorePort,
)
from blockcrack.core.session import Session


logger = logging.getLogger(__name__)


class Cracker:
    """Orchestrates fetching block lists, cracking digests and reporting."""

    def __init__(
        self,
        store: SessionStorePort,
        fetcher: BlocklistFetcherPort | None = None,
        settings: CrackSettings | None = None,
        wordlists: Mapping[str, Path] | None = None,
        executor: ExecutorPort | None = None,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._settings = settings or CrackSettings()
        self._wordlists = dict(wordlists or {})
        self._executor = executor

    @classmethod
    def from_directory(
        cls,
        directory: Path | None = None,
        settings: CrackSettings | None = None,
    ) -> Cracker:
        """Create a Cracker with auto-discovered project root and default adapters.

        Args:
            directory: Start directory for root discovery (defaults to cwd).
            settings: Tunables; defaults to ``CrackSettings.from_env()``.

        Returns:
            Cracker with a JsonSessionStore, the Mastodon fetcher, discovered
            wordlists and a thread pool for fetching.
        """
        from blockcrack.adapters.executor import ThreadPoolExecutorAdapter
        from blockcrack.adapters.fetch import MastodonBlocklistFetcher
        from blockcrack.adapters.store import JsonSessionStore
        from blockcrack.config import find_project_root
        from blockcrack.core.codec import DEFAULT_ALGORITHM
        from blockcrack.discovery import discover_wordlists

        settings = settings or CrackSettings.from_env()
        root = find_project_root(directory)

        return cls(
            store=JsonSessionStore(
                settings.database_path(root), settings.algorithm or DEFAULT_ALGORITHM
            ),
            fetcher=MastodonBlocklistFetcher(timeout=settings.timeout),
            settings=settings,
            wordlists=discover_wordlists(root),
            executor=ThreadPoolExecutorAdapter(max_workers=8, name="blockcrack-fetch"),
        )

    @property
    def settings(self) -> CrackSettings:
        """Settings in effect."""
        return self._settings

    @property
    def wordlists(self) -> dict[str, Path]:
        """Wordlists used by ``crack``, by name."""
        return dict(self._wordlists)

    def load_session(self) -> Session:
        """Load the stored session.

        Raises:
            CorruptDatabase: If the database cannot be parsed.
            AlgorithmMismatchError: If an algorithm was requested that differs
                from the one the session recorded.
        """
        session = self._store.load()
        requested = self._settings.algorithm
        if requested is not None and requested != session.algorithm:
            raise AlgorithmMismatchError(requested, session.algorithm)
        return session

    def fetch(self, instance: str) -> ImportReport:
        """Fetch one instance's block list and import it.

        Raises:
            FetchError: If the instance cannot be fetched.
            ConfigurationError: If no fetcher is configured.
        """
        self.load_session()
        entries = self._require_fetcher().fetch(instance)
        return self._store.import_block_entries(entries)

    def fetch_all(
        self,
        instances: Sequence[str],
        progress: ProgressReporter | None = None,
    ) -> FetchSummary:
        """Fetch several instances and import every list that arrived.

        Fetching runs in parallel when an executor with more than one worker
        is injected. A failing instance is reported in the summary and does
        not stop the others.
        """
        if progress is None:
            progress = NullProgressReporter()
        self.load_session()
        return fetch_and_import(
            list(instances), self._require_fetcher(), self._store, progress, self._executor
        )

    def import_entries(self, entries: Sequence[BlockEntry]) -> ImportReport:
        """Import entries obtained elsewhere (for example a saved file)."""
        self.load_session()
        return self._store.import_block_entries(entries)

    def generators(
        self,
        session: Session,
        *,
        suffix_limit: int | None = None,
    ) -> list[CandidateGenerator]:
        """Build the default generators, in scheduling order.

        Known plaintext domains come first, then published wildcard
        patterns, wordlists, TLD and subdomain variants of the known
        domains, and numbered siblings when ``suffix_limit`` is set.

        Numbered siblings never run out, so they are only added with a
        limit; otherwise a run could never end EXHAUSTED. Callers wanting the
        unbounded sequence pass ``NumericSuffixGenerator(bases)`` themselves
        through ``generators=``.
        """
        known = session.known_domains()
        generators: list[CandidateGenerator] = [
            DomainListGenerator(known),
            WildcardGenerator(
                session.targets.patterns(), max_wildcards=self._settings.max_wildcards
            ),
        ]
        for name, path in sorted(self._wordlists.items()):
            generators.append(WordlistGenerator(path, f"wordlist:{name}"))
        generators.append(VariantGenerator(known, "tld"))
        generators.append(VariantGenerator(known, "subdomain"))
        if suffix_limit:
            generators.append(NumericSuffixGenerator(known, limit=suffix_limit))
        return generators

    def prepare_crack(
        self,
        progress: ProgressReporter | None = None,
        *,
        generators: Sequence[CandidateGenerator] | None = None,
        suffix_limit: int | None = None,
    ) -> MatchEngine:
        """Load the session and return an engine ready to ``run()``.

        Callers that want to stop the run from a signal handler keep the
        engine and call ``stop()`` on it.
        """
        from blockcrack.adapters.executor import (
            ThreadPoolExecutorAdapter,
            create_executor,
        )

        session = self.load_session()
        if generators is None:
            generators = self.generators(session, suffix_limit=suffix_limit)
        source = CandidateSource(
            generators,
            batch_size=self._settings.batch_size,
            dedup_limit=self._settings.dedup_limit,
        )
        logger.debug(
            "Cracking %d outstanding digests with %s",
            session.outstanding_count,
            ", ".join(source.generator_ids),
        )
        return MatchEngine(
            session,
            source,
            self._store,
            executor=create_executor(self._settings.workers, name="blockcrack-hash"),
            writer=ThreadPoolExecutorAdapter(max_workers=1, name="blockcrack-checkpoint"),
            checkpoint_every=self._settings.checkpoint_every,
            checkpoint_interval=self._settings.checkpoint_interval,
            progress=progress,
        )

    def crack(
        self,
        progress: ProgressReporter | None = None,
        *,
        generators: Sequence[CandidateGenerator] | None = None,
        suffix_limit: int | None = None,
    ) -> CrackResult:
        """Search for the plaintext of every outstanding digest.

        Returns:
            CrackResult with the terminal state and counters.

        Raises:
            CorruptDatabase: If the stored session cannot be loaded.
            AlgorithmMismatchError: If the requested algorithm differs.
        """
        engine = self.prepare_crack(
            progress, generators=generators, suffix_limit=suffix_limit
        )
        return engine.run()

    def report(self, instance: str | None = None) -> list[ReportRow]:
        """Every digest with its resolution and blocking instances."""
        return self.load_session().report(instance)

    def summaries(self) -> list[InstanceSummary]:
        """Per-instance entry, cracked and outstanding totals."""
        return self.load_session().summaries()

    def _require_fetcher(self) -> BlocklistFetcherPort:
        if self._fetcher is None:
            from blockcrack.core.exceptions import ConfigurationError

            raise ConfigurationError("No block list fetcher configured")
        return self._fetcher
