"""Per-dataset cache policies.

TTLs follow how fast each upstream dataset changes: live positions expire
after 30 seconds, the station list after a day. Live per-line locations are
not persisted since they are useless after a restart.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from transitcache.cache.keys import CacheKeys
from transitcache.cache.models import CachePolicy
from transitcache.errors import UnknownDatasetError

SECOND = 1.0
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE


class Dataset(str, Enum):
    """Cached upstream datasets."""

    LIVE_BUSES = "live_buses"
    ALL_LINES = "all_lines"
    BUS_LINES = "bus_lines"
    STATIONS = "stations"
    LINE_DETAILS = "line_details"
    LIVE_SCHEDULE = "live_schedule"
    BUS_SCHEDULE = "bus_schedule"
    BUS_SCHEDULE_RIDES = "bus_schedule_rides"
    BUS_LOCATION = "bus_location"


@dataclass(frozen=True)
class DatasetSpec:
    """Cache key template and policy of one dataset.

    ``fixed_key`` is set for datasets cached under a single key; per-line
    datasets build their key from an identifier with ``key_for``.
    """

    dataset: Dataset
    policy: CachePolicy
    fixed_key: str | None = None

    def key_for(self, identifier: str | int | None = None) -> str:
        if self.fixed_key is not None:
            return self.fixed_key
        if identifier is None or identifier == "":
            raise ValueError(f"{self.dataset.value} requires an identifier")
        return _PER_LINE_KEYS[self.dataset](identifier)


_PER_LINE_KEYS = {
    Dataset.LINE_DETAILS: CacheKeys.line_details,
    Dataset.LIVE_SCHEDULE: CacheKeys.live_schedule,
    Dataset.BUS_SCHEDULE: CacheKeys.bus_schedule,
    Dataset.BUS_SCHEDULE_RIDES: CacheKeys.bus_schedule_rides,
    Dataset.BUS_LOCATION: CacheKeys.bus_location,
}

DATASETS: dict[Dataset, DatasetSpec] = {
    Dataset.LIVE_BUSES: DatasetSpec(
        Dataset.LIVE_BUSES, CachePolicy(ttl=30 * SECOND), fixed_key=CacheKeys.live_buses()
    ),
    Dataset.ALL_LINES: DatasetSpec(
        Dataset.ALL_LINES, CachePolicy(ttl=1 * HOUR), fixed_key=CacheKeys.all_lines()
    ),
    Dataset.BUS_LINES: DatasetSpec(
        Dataset.BUS_LINES, CachePolicy(ttl=1 * HOUR), fixed_key=CacheKeys.bus_lines()
    ),
    Dataset.STATIONS: DatasetSpec(
        Dataset.STATIONS, CachePolicy(ttl=24 * HOUR), fixed_key=CacheKeys.stations()
    ),
    Dataset.LINE_DETAILS: DatasetSpec(Dataset.LINE_DETAILS, CachePolicy(ttl=10 * MINUTE)),
    Dataset.LIVE_SCHEDULE: DatasetSpec(Dataset.LIVE_SCHEDULE, CachePolicy(ttl=1 * MINUTE)),
    Dataset.BUS_SCHEDULE: DatasetSpec(Dataset.BUS_SCHEDULE, CachePolicy(ttl=5 * MINUTE)),
    Dataset.BUS_SCHEDULE_RIDES: DatasetSpec(
        Dataset.BUS_SCHEDULE_RIDES, CachePolicy(ttl=2 * MINUTE)
    ),
    Dataset.BUS_LOCATION: DatasetSpec(
        Dataset.BUS_LOCATION, CachePolicy(ttl=30 * SECOND, persist=False)
    ),
}


def get_dataset(name: str | Dataset) -> DatasetSpec:
    """Look up a dataset by enum member or value.

    Raises:
        UnknownDatasetError: If no dataset has that name
    """
    try:
        return DATASETS[Dataset(name)]
    except ValueError:
        raise UnknownDatasetError(str(name)) from None
