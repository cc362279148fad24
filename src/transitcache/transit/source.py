"""Upstream transit API contract.

The cache facade never talks to the network itself; it wraps an object
implementing this protocol. Every method returns JSON-serializable data or
raises. Timeouts and retries are the implementation's responsibility.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class TransitSource(Protocol):
    """Operations offered by the upstream transit API client."""

    async def get_live_buses(self) -> list[Any]: ...

    async def get_all_lines(self) -> list[Any]: ...

    async def get_bus_lines(self) -> list[Any]: ...

    async def get_stations(self) -> list[Any]: ...

    async def get_line_details(self, line_id: str) -> Any: ...

    async def get_live_schedule(self, line_id: str) -> list[Any]: ...

    async def get_bus_schedule(self, line_number: str) -> list[Any]: ...

    async def get_bus_schedule_by_rides(self, line_number: str) -> list[Any]: ...

    async def get_bus_location(self, line_number: str) -> Any: ...
