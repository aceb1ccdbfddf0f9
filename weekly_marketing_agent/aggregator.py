from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Mapping, Sequence

from weekly_marketing_agent.models import SOURCE_LABELS, SOURCE_NAMES, CombinedSnapshot, SourceResult


DISABLED_SOURCE_MESSAGE = "Source disabled for this run."


def _run_fetcher(source: str, fetcher: Callable[[], dict[str, Any]]) -> SourceResult:
    started = time.perf_counter()
    snapshot = fetcher()
    elapsed = time.perf_counter() - started
    if not isinstance(snapshot, dict):
        return SourceResult(
            source=source,
            error=f"Fetcher returned {type(snapshot).__name__}, expected a JSON object.",
            elapsed_sec=elapsed,
        )
    return SourceResult(source=source, snapshot=snapshot, elapsed_sec=elapsed)


def collect_sources(
    fetchers: Mapping[str, Callable[[], dict[str, Any]]],
    source_names: Sequence[str] = SOURCE_NAMES,
) -> CombinedSnapshot:
    """Run every fetcher concurrently and settle each one into a ``SourceResult``.

    Never raises for a fetcher failure: the failure becomes that source's
    ``{"error": ...}`` slot. Names without a fetcher are reported as disabled.
    """
    results: dict[str, SourceResult] = {}
    active = {name: fetchers[name] for name in source_names if name in fetchers}
    print(f"Fetching {len(active)} source(s): {', '.join(active) or 'none'}")

    if active:
        started: dict[str, float] = {}
        with ThreadPoolExecutor(max_workers=len(active)) as executor:
            future_map = {}
            for name, fetcher in active.items():
                started[name] = time.perf_counter()
                future_map[executor.submit(_run_fetcher, name, fetcher)] = name
            for future in as_completed(future_map):
                name = future_map[future]
                label = SOURCE_LABELS.get(name, name)
                try:
                    result = future.result()
                except Exception as exc:
                    result = SourceResult(
                        source=name,
                        error=str(exc) or type(exc).__name__,
                        elapsed_sec=time.perf_counter() - started[name],
                    )
                results[name] = result
                if result.ok:
                    print(f"  {label}: OK ({result.elapsed_sec:.1f}s)")
                else:
                    print(f"  {label}: FAILED ({result.elapsed_sec:.1f}s) | {result.error}")

    for name in source_names:
        if name not in results:
            results[name] = SourceResult(source=name, error=DISABLED_SOURCE_MESSAGE)

    combined = CombinedSnapshot(results=tuple(results[name] for name in source_names))
    print(f"Sources fetched: {len(combined.succeeded)}/{len(source_names)} ok")
    return combined
