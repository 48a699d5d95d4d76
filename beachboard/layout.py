from __future__ import annotations

from .elements import Element, ElementKind
from .errors import ElementNotFoundError

TEMPLATE_SEAT_ID = "sunbed"
SEAT_CLONE_COUNT = 125


def _clones(*numbers: int) -> tuple[str, ...]:
    return tuple(f"clon_{n}" for n in numbers)


VISIBILITY_GROUPS: dict[str, tuple[str, ...]] = {
    "row_0": _clones(*range(112, 125)),
    "row_1": _clones(*range(98, 111)),
    "row_2": _clones(*range(84, 97)),
    "row_3": _clones(*range(70, 83)),
    "row_4": _clones(*range(56, 69)),
    "row_8": _clones(9, 10, 11, 12),
    "free_zone_1": _clones(14, 15, 28, 29, 42, 43, 56, 57, 70, 71),
    "free_zone_2": _clones(84, 85, 98, 99, 112, 113),
    "seat_10a": _clones(111),
    "seat_0": _clones(125),
}


def seat_ids() -> tuple[str, ...]:
    return (TEMPLATE_SEAT_ID, *_clones(*range(1, SEAT_CLONE_COUNT + 1)))


def circle_ids(count: int) -> tuple[str, ...]:
    return tuple(f"circle_{n}" for n in range(1, max(0, count) + 1))


class BoardLayout:
    """The static set of elements on the board, created once at start-up."""

    def __init__(self, circle_count: int = 12) -> None:
        self.circle_count = circle_count
        self._kinds: dict[str, ElementKind] = {
            element_id: ElementKind.SEAT for element_id in seat_ids()
        }
        for element_id in circle_ids(circle_count):
            self._kinds[element_id] = ElementKind.CIRCLE

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._kinds

    def __len__(self) -> int:
        return len(self._kinds)

    def kind_of(self, element_id: str) -> ElementKind:
        try:
            return self._kinds[element_id]
        except KeyError:
            raise ElementNotFoundError(element_id) from None

    def ids(self, kind: ElementKind | None = None) -> list[str]:
        return [
            element_id
            for element_id, element_kind in self._kinds.items()
            if kind is None or element_kind is kind
        ]

    def blank(self, element_id: str) -> Element:
        return Element(id=element_id, kind=self.kind_of(element_id))

    @staticmethod
    def group_members(group: str) -> tuple[str, ...]:
        try:
            return VISIBILITY_GROUPS[group]
        except KeyError:
            raise KeyError(f"unknown visibility group: {group}") from None
