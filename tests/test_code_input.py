import pytest

from client.code_input import CodeInput, IncompleteCodeError


@pytest.fixture
def code_input():
    return CodeInput()


def type_all(code_input, digits):
    for char in digits:
        assert code_input.type(char)


def test_digit_advances_focus(code_input):
    assert code_input.enter(0, "4")
    assert code_input.slots[0] == "4"
    assert code_input.focus == 1


def test_focus_stays_on_last_slot(code_input):
    type_all(code_input, "123456")
    assert code_input.focus == 5
    assert code_input.code() == "123456"


@pytest.mark.parametrize("char", ["a", " ", "12", "", "٣", "-"])
def test_non_digits_are_ignored(code_input, char):
    assert not code_input.enter(0, char)
    assert code_input.slots == [""] * 6
    assert code_input.focus == 0


def test_out_of_range_slot_is_ignored(code_input):
    assert not code_input.enter(6, "1")
    assert not code_input.enter(-1, "1")


def test_backspace_on_empty_slot_moves_focus_back_without_deleting(code_input):
    type_all(code_input, "12")
    assert code_input.focus == 2

    code_input.backspace()

    assert code_input.focus == 1
    assert code_input.slots[:2] == ["1", "2"]


def test_backspace_on_filled_slot_clears_it(code_input):
    type_all(code_input, "12")
    code_input.move_left()

    code_input.backspace()

    assert code_input.slots[:2] == ["1", ""]
    assert code_input.focus == 1


def test_backspace_on_first_slot_stays(code_input):
    code_input.backspace()
    assert code_input.focus == 0


def test_arrows_move_focus_only(code_input):
    type_all(code_input, "123")
    code_input.move_left()
    code_input.move_left()
    assert code_input.focus == 1
    code_input.move_right()
    assert code_input.focus == 2
    assert code_input.slots[:3] == ["1", "2", "3"]

    for _ in range(10):
        code_input.move_right()
    assert code_input.focus == 5
    for _ in range(10):
        code_input.move_left()
    assert code_input.focus == 0


def test_paste_fills_from_first_slot(code_input):
    code_input.move_right()
    assert code_input.paste("123456")
    assert code_input.slots == list("123456")
    assert code_input.focus == 5


def test_paste_truncates_to_six(code_input):
    assert code_input.paste("12345678")
    assert code_input.code() == "123456"


def test_short_paste_leaves_trailing_slots_empty(code_input):
    type_all(code_input, "999999")
    assert code_input.paste("123")
    assert code_input.slots == ["1", "2", "3", "", "", ""]
    assert code_input.focus == 2
    assert not code_input.is_complete


@pytest.mark.parametrize("text", ["12ab56", "abc", "", "12 34", "1234.5", "123456ab"])
def test_mixed_paste_is_rejected_outright(code_input, text):
    assert not code_input.paste(text)
    assert code_input.slots == [""] * 6


def test_incomplete_code_raises(code_input):
    type_all(code_input, "12345")
    with pytest.raises(IncompleteCodeError) as excinfo:
        code_input.code()
    assert excinfo.value.code == "incomplete_code"


def test_clear_resets_slots_and_focus(code_input):
    type_all(code_input, "123456")
    code_input.clear()
    assert code_input.slots == [""] * 6
    assert code_input.focus == 0
