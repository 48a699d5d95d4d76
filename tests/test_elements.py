import pytest

from beachboard.elements import Element, ElementKind, next_step, step_class, validate_step
from beachboard.errors import InvalidStepError


def test_toggle_cycles_seat_through_all_steps_and_wraps() -> None:
    element = Element(id="clon_1", kind=ElementKind.SEAT)
    seen = []
    for _ in range(8):
        element = element.cycled()
        seen.append(element.step)
    assert seen == [1, 2, 3, 4, 5, 6, 1, 2]


def test_toggle_cycles_circle_with_three_steps() -> None:
    element = Element(id="circle_1", kind=ElementKind.CIRCLE, step=3)
    assert element.cycled().step == 1
    assert next_step(ElementKind.CIRCLE, 0) == 1
    assert next_step(ElementKind.CIRCLE, 2) == 3


def test_next_step_restarts_on_out_of_range_values() -> None:
    assert next_step(ElementKind.SEAT, 99) == 1
    assert next_step(ElementKind.SEAT, -4) == 1


def test_validate_step_accepts_numeric_strings() -> None:
    assert validate_step(ElementKind.SEAT, "4") == 4
    assert validate_step(ElementKind.SEAT, 6) == 6
    assert validate_step(ElementKind.CIRCLE, 2.0) == 2


@pytest.mark.parametrize("value", [7, -1, "abc", None, True, 1.5])
def test_validate_step_rejects_bad_values(value: object) -> None:
    with pytest.raises(InvalidStepError):
        validate_step(ElementKind.SEAT, value)


def test_circle_rejects_seat_only_steps() -> None:
    with pytest.raises(InvalidStepError):
        Element(id="circle_2", kind=ElementKind.CIRCLE, step=4)


def test_step_class_names() -> None:
    assert step_class(0) == ""
    assert step_class(3) == "step3"
    assert Element(id="clon_2", kind=ElementKind.SEAT, step=5).style_class == "step5"


def test_with_name_strips_and_clears() -> None:
    element = Element(id="clon_3", kind=ElementKind.SEAT).with_name("  Ana  ")
    assert element.customer_name == "Ana"
    assert element.with_name("   ").customer_name is None


def test_documents_only_carry_names_for_seats() -> None:
    seat = Element(id="clon_4", kind=ElementKind.SEAT, step=2, customer_name="Luis")
    circle = Element(id="circle_4", kind=ElementKind.CIRCLE, step=1)
    assert seat.to_document() == {"step": 2, "customer_name": "Luis"}
    assert circle.to_document() == {"step": 1}


def test_kind_from_collection() -> None:
    assert ElementKind.from_collection("sunbeds") is ElementKind.SEAT
    assert ElementKind.from_collection("circles") is ElementKind.CIRCLE
    with pytest.raises(ValueError):
        ElementKind.from_collection("payments")
