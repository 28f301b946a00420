"""
Monthly bandwidth accounting.

Host network counters are cumulative since boot. Each sample is turned into
a delta against the previous sample and added to a month-to-date total kept
in a small JSON file. A counter that goes backwards (reboot, interface reset)
contributes nothing.

The file is read, modified and written without any cross-process lock, so
only one vpsdash process may write a given store.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from vpsdash.models import BandwidthRecord

logger = logging.getLogger(__name__)


def month_key(now: datetime) -> str:
    """``YYYY-MM`` of ``now`` in UTC. Naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m")


class BandwidthStore:
    """Single-file JSON persistence for the bandwidth record."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> BandwidthRecord | None:
        """Return the stored record, or None if missing or unreadable."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Could not read bandwidth store %s", self._path, exc_info=True)
            return None

        try:
            return BandwidthRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring corrupt bandwidth store %s", self._path)
            return None

    def save(self, record: BandwidthRecord) -> None:
        """Write the record atomically. Failures are logged, not raised."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".bandwidth-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(record.to_dict(), handle, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError:
            logger.warning("Could not write bandwidth store %s", self._path, exc_info=True)


class BandwidthAccumulator:
    """Turns cumulative rx/tx counters into a persisted monthly total."""

    def __init__(self, store: BandwidthStore) -> None:
        self._store = store

    def update(self, rx_bytes: int, tx_bytes: int, now: datetime | None = None) -> BandwidthRecord:
        """
        Fold one counter sample into the monthly total and persist it.

        Args:
            rx_bytes: Cumulative received bytes since boot.
            tx_bytes: Cumulative sent bytes since boot.
            now: Sample time. Defaults to the current UTC time.
        """
        now = now or datetime.now(timezone.utc)
        current_total = max(0, int(rx_bytes) + int(tx_bytes))
        key = month_key(now)
        stamp = now.isoformat()

        record = self._store.load()
        if record is None:
            record = BandwidthRecord(month=key, month_bytes=0, last_total=current_total, last_updated=stamp)
        elif record.month != key:
            logger.info("Bandwidth month rolled over from %s to %s", record.month, key)
            record = BandwidthRecord(month=key, month_bytes=0, last_total=current_total, last_updated=stamp)
        else:
            delta = current_total - record.last_total
            if delta < 0:
                logger.info("Network counters went backwards (%s -> %s), treating as reset",
                            record.last_total, current_total)
                delta = 0
            record.month_bytes += delta
            record.last_total = current_total
            record.last_updated = stamp

        self._store.save(record)
        return record
