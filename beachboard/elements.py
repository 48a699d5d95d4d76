"""Per-element state: the bounded colour step and customer name of seats and circles."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .errors import InvalidStepError


class ElementKind(str, Enum):
    SEAT = "seat"
    CIRCLE = "circle"

    @property
    def max_step(self) -> int:
        return 6 if self is ElementKind.SEAT else 3

    @property
    def collection(self) -> str:
        """Remote collection holding one document per element of this kind."""
        return "sunbeds" if self is ElementKind.SEAT else "circles"

    @property
    def key_prefix(self) -> str:
        return "sunbed:" if self is ElementKind.SEAT else "circle:"

    @classmethod
    def from_collection(cls, collection: str) -> ElementKind:
        for kind in cls:
            if kind.collection == collection:
                return kind
        raise ValueError(f"not an element collection: {collection}")


def validate_step(kind: ElementKind, value: object) -> int:
    """Coerce ``value`` to a step for ``kind``.

    Remote documents written by older stations store the step as a string,
    so numeric strings are accepted.
    """
    if isinstance(value, bool):
        raise InvalidStepError(f"invalid step: {value!r}")
    if isinstance(value, int):
        step = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        step = int(value.strip())
    elif isinstance(value, float) and value.is_integer():
        step = int(value)
    else:
        raise InvalidStepError(f"invalid step: {value!r}")
    if not 0 <= step <= kind.max_step:
        raise InvalidStepError(f"step {step} out of range 0..{kind.max_step} for {kind.value}")
    return step


def next_step(kind: ElementKind, current: int) -> int:
    # 0 -> 1, N -> 1; anything out of range restarts the cycle.
    if current < 0 or current >= kind.max_step:
        return 1
    return current + 1


def step_class(step: int) -> str:
    return f"step{step}" if step > 0 else ""


@dataclass(frozen=True)
class Element:
    id: str
    kind: ElementKind
    step: int = 0
    customer_name: str | None = None
    last_updated: str | None = None

    def __post_init__(self) -> None:
        validate_step(self.kind, self.step)

    @property
    def style_class(self) -> str:
        return step_class(self.step)

    def cycled(self) -> Element:
        return replace(self, step=next_step(self.kind, self.step))

    def with_step(self, step: object) -> Element:
        return replace(self, step=validate_step(self.kind, step))

    def with_name(self, name: str | None) -> Element:
        cleaned = (name or "").strip()
        return replace(self, customer_name=cleaned or None)

    def to_record(self) -> dict[str, object]:
        return {
            "step": self.step,
            "customer_name": self.customer_name,
            "last_updated": self.last_updated,
        }

    def to_document(self) -> dict[str, object]:
        data: dict[str, object] = {"step": self.step}
        if self.kind is ElementKind.SEAT:
            data["customer_name"] = self.customer_name or ""
        return data
