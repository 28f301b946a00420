"""Tests for the monthly bandwidth accumulator."""

import json
from datetime import datetime, timedelta, timezone

from vpsdash.bandwidth import BandwidthAccumulator, BandwidthStore, month_key

OCT = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
NOV = datetime(2026, 11, 1, 0, 0, 1, tzinfo=timezone.utc)


def _accumulator(tmp_path) -> BandwidthAccumulator:
    return BandwidthAccumulator(BandwidthStore(tmp_path / "data" / "bandwidth.json"))


class TestMonthKey:
    """Month keys are computed in UTC."""

    def test_utc(self):
        assert month_key(OCT) == "2026-10"

    def test_other_timezone_is_converted(self):
        # 2026-11-01 01:00 at UTC+2 is still October in UTC
        local = datetime(2026, 11, 1, 1, 0, tzinfo=timezone(timedelta(hours=2)))
        assert month_key(local) == "2026-10"

    def test_naive_is_utc(self):
        assert month_key(datetime(2026, 1, 31, 23, 59)) == "2026-01"


class TestAccumulator:
    """Accumulation, reset and rollover behavior."""

    def test_counter_scenario(self, tmp_path):
        accumulator = _accumulator(tmp_path)

        first = accumulator.update(1000, 2000, OCT)
        assert first.month_bytes == 0
        assert first.last_total == 3000

        second = accumulator.update(1200, 2300, OCT + timedelta(minutes=1))
        assert second.month_bytes == 500

        reset = accumulator.update(10, 20, OCT + timedelta(minutes=2))
        assert reset.month_bytes == 500
        assert reset.last_total == 30

    def test_delta_after_reset_counts_from_new_baseline(self, tmp_path):
        accumulator = _accumulator(tmp_path)
        accumulator.update(1000, 2000, OCT)
        accumulator.update(10, 20, OCT)

        assert accumulator.update(50, 80, OCT).month_bytes == 100

    def test_month_rollover(self, tmp_path):
        accumulator = _accumulator(tmp_path)
        accumulator.update(1000, 2000, OCT)
        accumulator.update(5000, 5000, OCT)

        rolled = accumulator.update(6000, 6000, NOV)

        assert rolled.month == "2026-11"
        assert rolled.month_bytes == 0
        assert rolled.last_total == 12000

    def test_non_decreasing_within_month(self, tmp_path):
        accumulator = _accumulator(tmp_path)
        samples = [100, 400, 50, 60, 1000, 0, 10]
        previous = 0
        for total in samples:
            current = accumulator.update(total, 0, OCT).month_bytes
            assert current >= previous
            previous = current

    def test_record_is_persisted(self, tmp_path):
        accumulator = _accumulator(tmp_path)
        accumulator.update(1000, 2000, OCT)
        accumulator.update(1200, 2300, OCT)

        stored = json.loads((tmp_path / "data" / "bandwidth.json").read_text())
        assert stored["month"] == "2026-10"
        assert stored["monthBytes"] == 500
        assert stored["lastTotal"] == 3500
        assert stored["lastUpdated"].startswith("2026-10-18")

    def test_survives_a_new_accumulator_instance(self, tmp_path):
        _accumulator(tmp_path).update(1000, 2000, OCT)
        assert _accumulator(tmp_path).update(1500, 2000, OCT).month_bytes == 500


class TestStore:
    """Store read/write behavior."""

    def test_missing_file(self, tmp_path):
        assert BandwidthStore(tmp_path / "missing.json").load() is None

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "bandwidth.json"
        path.write_text("{not json")
        assert BandwidthStore(path).load() is None

        record = BandwidthAccumulator(BandwidthStore(path)).update(10, 10, OCT)
        assert record.month_bytes == 0
        assert json.loads(path.read_text())["lastTotal"] == 20

    def test_unwritable_location_does_not_raise(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = BandwidthStore(blocker / "bandwidth.json")

        record = BandwidthAccumulator(store).update(1, 2, OCT)
        assert record.last_total == 3
