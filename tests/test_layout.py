import pytest

from beachboard.elements import ElementKind
from beachboard.errors import ElementNotFoundError
from beachboard.layout import VISIBILITY_GROUPS, BoardLayout, circle_ids, seat_ids


def test_layout_has_template_seat_clones_and_circles() -> None:
    layout = BoardLayout(circle_count=4)
    assert len(seat_ids()) == 126
    assert len(layout) == 130
    assert "sunbed" in layout
    assert "clon_125" in layout
    assert "clon_126" not in layout
    assert layout.ids(ElementKind.CIRCLE) == list(circle_ids(4))


def test_kind_of_resolves_and_rejects_unknown_ids() -> None:
    layout = BoardLayout()
    assert layout.kind_of("clon_7") is ElementKind.SEAT
    assert layout.kind_of("circle_12") is ElementKind.CIRCLE
    with pytest.raises(ElementNotFoundError, match="unknown element: clon_999"):
        layout.kind_of("clon_999")


def test_blank_element_starts_at_zero() -> None:
    element = BoardLayout().blank("clon_9")
    assert element.step == 0
    assert element.customer_name is None


def test_visibility_groups_reference_real_seats() -> None:
    layout = BoardLayout()
    for members in VISIBILITY_GROUPS.values():
        for element_id in members:
            assert layout.kind_of(element_id) is ElementKind.SEAT
    assert BoardLayout.group_members("row_8") == ("clon_9", "clon_10", "clon_11", "clon_12")
    with pytest.raises(KeyError):
        BoardLayout.group_members("row_99")
