"""Cache key schema for transitcache.

Logical keys are what callers pass to the engine:
- fixed datasets: "live_buses", "all_lines", "bus_lines", "stations"
- per-line datasets: "{dataset}_{identifier}", e.g. "bus_schedule_12"

Durable keys prefix the logical key with the engine namespace so cache rows
never collide with unrelated data in a shared store:
    {namespace}{logical_key}
    {namespace}timestamps   (persisted timestamp index)
"""

from __future__ import annotations


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    LIVE_BUSES = "live_buses"
    ALL_LINES = "all_lines"
    BUS_LINES = "bus_lines"
    STATIONS = "stations"

    LINE_DETAILS_PREFIX = "line_details_"
    LIVE_SCHEDULE_PREFIX = "live_schedule_"
    BUS_SCHEDULE_PREFIX = "bus_schedule_"
    BUS_SCHEDULE_RIDES_PREFIX = "bus_schedule_rides_"
    BUS_LOCATION_PREFIX = "bus_location_"

    TIMESTAMP_INDEX = "timestamps"

    @classmethod
    def live_buses(cls) -> str:
        """Key for live bus positions."""
        return cls.LIVE_BUSES

    @classmethod
    def all_lines(cls) -> str:
        """Key for the line catalog."""
        return cls.ALL_LINES

    @classmethod
    def bus_lines(cls) -> str:
        """Key for the alternate bus line listing."""
        return cls.BUS_LINES

    @classmethod
    def stations(cls) -> str:
        """Key for the station list."""
        return cls.STATIONS

    @classmethod
    def line_details(cls, line_id: str | int) -> str:
        """Key for details of one line."""
        return f"{cls.LINE_DETAILS_PREFIX}{line_id}"

    @classmethod
    def live_schedule(cls, line_id: str | int) -> str:
        """Key for the live schedule of one line."""
        return f"{cls.LIVE_SCHEDULE_PREFIX}{line_id}"

    @classmethod
    def bus_schedule(cls, line_number: str | int) -> str:
        """Key for the departure schedule of one line."""
        return f"{cls.BUS_SCHEDULE_PREFIX}{line_number}"

    @classmethod
    def bus_schedule_rides(cls, line_number: str | int) -> str:
        """Key for departures of one line grouped into rides."""
        return f"{cls.BUS_SCHEDULE_RIDES_PREFIX}{line_number}"

    @classmethod
    def bus_location(cls, line_number: str | int) -> str:
        """Key for the current location of one line's buses."""
        return f"{cls.BUS_LOCATION_PREFIX}{line_number}"

    @staticmethod
    def durable(namespace: str, key: str) -> str:
        """Durable store key for a logical cache key."""
        return f"{namespace}{key}"

    @classmethod
    def timestamp_index(cls, namespace: str) -> str:
        """Durable store key holding the persisted timestamp index."""
        return f"{namespace}{cls.TIMESTAMP_INDEX}"

    @staticmethod
    def strip_namespace(namespace: str, durable_key: str) -> str | None:
        """Return the logical key for a durable key.

        Returns None if the key does not belong to the namespace.
        """
        if not durable_key.startswith(namespace):
            return None
        return durable_key[len(namespace) :]
