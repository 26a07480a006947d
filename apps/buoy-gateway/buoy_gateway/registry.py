"""Static mapping from public buoy ids to the numeric ids used by upstream endpoints."""
from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple

from buoy_gateway.errors import UnknownDevice

DEFAULT_DEVICES: Mapping[str, int] = MappingProxyType(
    {
        "buoy-1": 1,
        "buoy-2": 2,
    }
)


class DeviceRegistry:
    """Immutable, bijective lookup table built once at startup."""

    def __init__(self, devices: Mapping[str, int]) -> None:
        table: Dict[str, int] = {}
        seen: Dict[int, str] = {}
        for device_id, numeric_id in devices.items():
            if isinstance(numeric_id, bool) or not isinstance(numeric_id, int) or numeric_id <= 0:
                raise ValueError(f"{device_id}: numeric id must be a positive integer")
            if numeric_id in seen:
                raise ValueError(f"{device_id}: numeric id {numeric_id} already used by {seen[numeric_id]}")
            table[str(device_id)] = numeric_id
            seen[numeric_id] = str(device_id)
        self._forward = MappingProxyType(table)
        self._reverse = MappingProxyType(seen)

    def resolve(self, device_id: str) -> int:
        try:
            return self._forward[device_id]
        except (KeyError, TypeError):
            raise UnknownDevice(device_id) from None

    def reverse(self, numeric_id: int) -> Optional[str]:
        return self._reverse.get(numeric_id)

    def device_ids(self) -> Tuple[str, ...]:
        return tuple(self._forward)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._forward

    def __iter__(self) -> Iterator[str]:
        return iter(self._forward)

    def __len__(self) -> int:
        return len(self._forward)


DEFAULT_REGISTRY = DeviceRegistry(DEFAULT_DEVICES)
