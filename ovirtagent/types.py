"""Core value types shared by providers, the orchestrator and the launcher."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class VmState(StrEnum):
    """Power state of a VM as seen by the orchestrator.

    Engines report a larger vocabulary; everything that is not one of the
    states the orchestrator reacts to collapses to OTHER.
    """

    DOWN = "down"
    POWERING_UP = "powering_up"
    UP = "up"
    IMAGE_LOCKED = "image_locked"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: object) -> VmState:
        """Convert a wire value (enum member or string) case-insensitively."""
        if raw is None:
            return cls.OTHER
        value = getattr(raw, "value", raw)
        text = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(text)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True, slots=True)
class Snapshot:
    """A snapshot as listed at one point in time. Identity is the description."""

    id: str
    description: str
