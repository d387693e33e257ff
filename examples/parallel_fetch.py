"""Parallel fetch and multi-worker cracking example.

Fetching many instances is network bound, so an executor with several
workers fetches them concurrently. Hashing uses ``CrackSettings.workers``
threads; results are still applied in a fixed order, so resuming after an
interruption never skips candidates.
"""

from pathlib import Path

from blockcrack import (
    CrackSettings,
    Cracker,
    JsonSessionStore,
    MastodonBlocklistFetcher,
    RichProgressReporter,
    ThreadPoolExecutorAdapter,
    load_instances,
)


cracker = Cracker(
    store=JsonSessionStore(Path("./session.json")),
    fetcher=MastodonBlocklistFetcher(),
    settings=CrackSettings(workers=4, batch_size=5000),
    executor=ThreadPoolExecutorAdapter(max_workers=8, name="fetch"),
)

# Seed hosts from .blockcrack/instances.txt, or the built-in list
instances = load_instances(Path("."))

with RichProgressReporter() as progress:
    summary = cracker.fetch_all(instances, progress=progress)

for instance, error in summary.failures.items():
    print(f"{instance}: {error}")

# Keep the engine to stop it from elsewhere (a signal handler, a timer)
with RichProgressReporter() as progress:
    engine = cracker.prepare_crack(progress, suffix_limit=20)
    result = engine.run()

print(f"{result.state.value} after {result.tried} candidates")
