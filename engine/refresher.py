"""
refresher.py -- Background regeneration of the emotion mapping.

Protocol for one refresh:
1. emotionMap and keywordMap are requested concurrently
2. once both succeed, suggestionMap and emotionSummaryMap are requested
   concurrently for the emotion ids returned in step 1
3. the assembled candidate goes to MappingStore.try_set(); the snapshot is
   then written from a worker thread

Any failed call aborts the refresh; the active mapping is left untouched.
Nothing here is ever awaited from a classification request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, Optional

from engine.gateway import Failure, ProviderConfig, ProviderGateway, ProviderOutcome, parse_json_object
from engine.prompt_builder import (
    build_emotion_map_request,
    build_keyword_map_request,
    build_suggestion_map_request,
    build_summary_map_request,
)
from mood.mapping_store import MappingStore

logger = logging.getLogger(__name__)

FailureSink = Callable[[str, str], None]


def log_refresh_failure(stage: str, detail: str) -> None:
    """Default observability sink."""
    logger.warning("Mapping refresh aborted at %s: %s", stage, detail)


class MappingRefresher:
    """Regenerates the four tables through the gateway and installs them if valid."""

    def __init__(
        self,
        store: MappingStore,
        gateway: ProviderGateway,
        providers: Sequence[ProviderConfig],
        interval_seconds: float = 6 * 3600.0,
        on_failure: FailureSink = log_refresh_failure,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.providers = list(providers)
        self.interval_seconds = interval_seconds
        self.on_failure = on_failure
        self._task: Optional[asyncio.Task[None]] = None
        self._oneshots: set[asyncio.Task[bool]] = set()

    async def _fetch(self, request: Any) -> ProviderOutcome:
        return await self.gateway.generate_text(self.providers, request, parse=parse_json_object)

    def _report(self, stage: str, outcome: ProviderOutcome) -> bool:
        if isinstance(outcome, Failure):
            self.on_failure(stage, f"{outcome.provider or '-'} {outcome.kind.value}: {outcome.detail}")
            return True
        return False

    async def refresh(self) -> bool:
        """Run one refresh. Returns True if the store now holds the new mapping."""
        if not self.providers:
            logger.info("No generation provider configured; skipping mapping refresh")
            return False

        logger.info("Mapping refresh started (%d providers)", len(self.providers))
        emotion_outcome, keyword_outcome = await asyncio.gather(
            self._fetch(build_emotion_map_request()),
            self._fetch(build_keyword_map_request()),
        )
        if self._report("emotionMap", emotion_outcome) or self._report("keywordMap", keyword_outcome):
            return False

        emotion_map: dict[str, Any] = emotion_outcome.payload
        emotion_ids = list(emotion_map)
        suggestion_outcome, summary_outcome = await asyncio.gather(
            self._fetch(build_suggestion_map_request(emotion_ids)),
            self._fetch(build_summary_map_request(emotion_ids)),
        )
        if self._report("suggestionMap", suggestion_outcome) or self._report("emotionSummaryMap", summary_outcome):
            return False

        candidate = {
            "emotionMap": emotion_map,
            "keywordMap": keyword_outcome.payload,
            "suggestionMap": suggestion_outcome.payload,
            "emotionSummaryMap": summary_outcome.payload,
        }
        if not self.store.try_set(candidate, persist=False):
            self.on_failure("validation", "regenerated mapping failed validation")
            return False
        # Disk write off the event loop.
        await asyncio.to_thread(self.store.save_snapshot)
        logger.info("Mapping refresh complete: %d emotions", len(emotion_ids))
        return True

    # -- Lifecycle -----------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Spawn the recurring refresh loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="mapping-refresher")
        logger.info("Mapping refresher scheduled every %.0fs", self.interval_seconds)

    async def stop(self) -> None:
        tasks = [t for t in (self._task, *self._oneshots) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._oneshots.clear()
        logger.info("Mapping refresher stopped")

    def trigger(self) -> asyncio.Task[bool]:
        """Schedule a one-off refresh in the background and return its task."""
        task = asyncio.create_task(self.refresh(), name="mapping-refresh-now")
        self._oneshots.add(task)
        task.add_done_callback(self._oneshots.discard)
        return task

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as exc:
                # The loop must outlive a single bad refresh.
                logger.error("Unexpected error in mapping refresh: %s", exc, exc_info=True)
            await asyncio.sleep(self.interval_seconds)


def bootstrap(store: MappingStore, refresher: Optional[MappingRefresher] = None) -> None:
    """
    Startup sequence: install a valid persisted snapshot if there is one
    (without re-persisting it), otherwise keep the built-in default; then
    start background refreshing. Classification is usable immediately.
    """
    persisted = store.load_persisted()
    if persisted is not None and store.try_set(persisted, persist=False):
        logger.info("Using persisted emotion mapping")
    else:
        logger.info("Using built-in default emotion mapping")
    if refresher is not None:
        refresher.start()
