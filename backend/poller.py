"""
Poll driver: fetch the device log on a fixed interval and merge it into the store.

Fetch failures (device restarting, network hiccups, expired sessions) are
logged and retried on the next tick. Merge and store failures stop the loop:
they point at a gap in the history or a broken database and need a human.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from fritzlog.core.config import Config, config as default_config
from fritzlog.core.exceptions import DeviceError, StoreError
from fritzlog.data.normalizers import normalize_entries
from fritzlog.data.schema import PollUpdate, RawLogEntry
from fritzlog.merge.engine import MergeEngine, MergeResult
from fritzlog.store.base import LogStore

from backend.device.client import FritzClient
from backend.device.session import DeviceSession

logger = logging.getLogger(__name__)


@dataclass
class PollOutcome:
    """What one poll did."""

    fetched: int
    skipped: int
    result: MergeResult

    @property
    def upserted(self) -> int:
        return len(self.result.incorporated)


def merge_raw_batch(
    store: LogStore,
    entries: List[RawLogEntry],
    settings: Optional[Config] = None,
    engine: Optional[MergeEngine] = None,
) -> PollOutcome:
    """
    Normalize a device-ordered (newest first) raw batch and merge it.

    Records one PollUpdate row in the store; a failure to do so is logged
    but does not fail the merge.
    """
    settings = settings if settings is not None else default_config
    engine = engine if engine is not None else MergeEngine(store)

    oldest_first = list(reversed(entries))
    records, skipped = normalize_entries(
        oldest_first, settings.tzinfo, settings.skip_invalid_entries
    )
    result = engine.merge(records)
    outcome = PollOutcome(fetched=len(entries), skipped=skipped, result=result)

    try:
        store.insert_update(
            PollUpdate(datetime=datetime.now(timezone.utc), upserted_rows=outcome.upserted)
        )
    except StoreError as e:
        logger.warning(f"Couldn't insert update metadata: {e}")

    logger.info(
        "Upserted %d logs (%s, fetched %d, skipped %d)",
        outcome.upserted,
        result.case.value,
        outcome.fetched,
        outcome.skipped,
    )
    return outcome


@dataclass
class LogPoller:
    """
    Serializes polls: one fetch + merge at a time, never overlapping.

    The poller owns the device session and hands it to the client on every
    fetch, renewing it when the device no longer accepts it.
    """

    client: FritzClient
    store: LogStore
    settings: Config = field(default_factory=lambda: default_config)
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic
    session: Optional[DeviceSession] = None

    def __post_init__(self) -> None:
        self.engine = MergeEngine(self.store)

    def fetch(self) -> List[RawLogEntry]:
        """Fetch one raw batch (newest first), renewing the session as needed."""
        self.session = self.client.ensure_session(self.session)
        return self.client.fetch_logs(self.session)

    def poll_once(self) -> PollOutcome:
        """
        Fetch and merge once.

        Raises:
            DeviceError: If fetching failed
            NormalizationError, MergeError, StoreError: If merging failed
        """
        entries = self.fetch()
        return merge_raw_batch(self.store, entries, self.settings, self.engine)

    def _fetch_with_retry(self, wait: Callable[[], None]) -> List[RawLogEntry]:
        while True:
            wait()
            try:
                return self.fetch()
            except DeviceError as e:
                logger.warning(f"Couldn't fetch logs: {e}")

    def run(self, max_polls: Optional[int] = None) -> int:
        """
        Poll until ``max_polls`` merges have completed (forever when None).

        Ticks are spaced refresh_pause_seconds apart; ticks missed because
        a poll ran long are skipped, not bunched up. The first tick fires
        immediately.

        Returns:
            Number of completed polls
        """
        interval = float(self.settings.refresh_pause_seconds)
        next_tick = self.clock()

        def wait() -> None:
            nonlocal next_tick
            now = self.clock()
            if now < next_tick:
                self.sleep(next_tick - now)
                now = next_tick
            # Skip ticks that were missed entirely
            while next_tick <= now:
                next_tick += interval

        completed = 0
        while max_polls is None or completed < max_polls:
            entries = self._fetch_with_retry(wait)
            try:
                merge_raw_batch(self.store, entries, self.settings, self.engine)
            except Exception:
                logger.exception("Merging logs failed, stopping")
                raise
            completed += 1

        return completed


def run_poller(
    client: FritzClient,
    store: LogStore,
    settings: Optional[Config] = None,
    max_polls: Optional[int] = None,
) -> int:
    """
    Run a poller with an initial login, logging out when the loop ends.

    A failing initial login is fatal: it usually means wrong credentials.
    """
    settings = settings if settings is not None else default_config
    poller = LogPoller(client=client, store=store, settings=settings)
    poller.session = client.login()
    try:
        completed = poller.run(max_polls=max_polls)
    finally:
        if poller.session is not None:
            try:
                client.logout(poller.session)
            except DeviceError as e:
                logger.warning(f"Couldn't log out: {e}")
    return completed
