# =============================================================================
# core/registry.py  -  Static tool table
# =============================================================================
#
# A ToolRegistry is built once at import time from a server's descriptor
# tuple and never changes afterwards.  list() hands the descriptors back in
# declaration order; nothing here sorts.
# =============================================================================

from __future__ import annotations

from typing import Iterable, Optional

from core.models import ToolDescriptor


class ToolRegistry:
    """Ordered, immutable table of tool descriptors keyed by name."""

    def __init__(self, descriptors: Iterable[ToolDescriptor]):
        self._descriptors: tuple[ToolDescriptor, ...] = tuple(descriptors)
        self._by_name: dict[str, ToolDescriptor] = {}
        for descriptor in self._descriptors:
            if descriptor.name in self._by_name:
                raise ValueError(f"Duplicate tool name: {descriptor.name}")
            self._by_name[descriptor.name] = descriptor

    def list(self) -> tuple[ToolDescriptor, ...]:
        return self._descriptors

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._by_name.get(name)

    def names(self) -> list[str]:
        return [descriptor.name for descriptor in self._descriptors]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._descriptors)
