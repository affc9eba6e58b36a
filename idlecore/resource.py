from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ResourceDef:
    """Static definition of a resource."""

    id: str
    display_name: str = ""
    initial_amount: float = 0.0
    max_capacity: float | None = None
    unlocked: bool = True
    era: int = 1
    category: str = ""

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.id
        if self.initial_amount < 0:
            raise ValueError(f"Resource {self.id!r}: initial_amount must be >= 0")


@dataclass
class ResourceState:
    """Mutable runtime state for a resource.

    ``current`` stays within ``[0, max_capacity]``; ``lifetime`` only grows.
    """

    current: float = 0.0
    lifetime: float = 0.0
    max_capacity: float | None = None
    unlocked: bool = True

    @classmethod
    def initial(cls, rdef: ResourceDef) -> ResourceState:
        return cls(
            current=rdef.initial_amount,
            lifetime=rdef.initial_amount,
            max_capacity=rdef.max_capacity,
            unlocked=rdef.unlocked,
        )
