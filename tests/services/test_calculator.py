"""
Tests for the calculator entry machine.

Covers:
- Operand entry (digits, decimal point, leading zero)
- Left-to-right chained evaluation
- Backspace across the operator boundary
- Division by zero rejected at both evaluation points
- Effective amount preview and keyboard mapping
"""

import pytest

from quickentry.services.calculator import (
    CalculatorMachine,
    CalculatorState,
    apply_operation,
    format_number,
    handle_key,
)
from quickentry.utils.errors import InputRejected


def press(machine: CalculatorMachine, *keys: str) -> CalculatorMachine:
    for key in keys:
        handle_key(machine, key)
    return machine


@pytest.fixture
def machine():
    return CalculatorMachine()


class TestOperandEntry:

    def test_decimal_entry_keeps_trailing_zero(self, machine):
        press(machine, "1", ".", "5", "0")

        assert machine.state.display == "1.50"
        assert machine.effective_amount() == 1.5

    def test_leading_zero_is_replaced(self, machine):
        press(machine, "0", "7")
        assert machine.state.display == "7"

    def test_decimal_point_on_zero(self, machine):
        machine.enter_digit(".")
        assert machine.state.display == "0."

    def test_second_decimal_point_is_ignored(self, machine):
        press(machine, "3", ".", "1", ".", "4")
        assert machine.state.display == "3.14"

    def test_decimal_point_starts_new_operand_after_operator(self, machine):
        press(machine, "5", "+", ".", "5")

        assert machine.state.display == "0.5"
        assert machine.effective_amount() == 5.5

    def test_invalid_digit_raises(self, machine):
        with pytest.raises(ValueError):
            machine.enter_digit("x")

    def test_invalid_operator_raises(self, machine):
        with pytest.raises(ValueError):
            machine.enter_operator("%")

    def test_show_amount_follows_entry(self, machine):
        assert machine.show_amount is False
        machine.enter_digit("4")
        assert machine.show_amount is True
        machine.reset()
        assert machine.show_amount is False

    def test_external_value_replaces_operand(self, machine):
        press(machine, "9", "9")
        machine.set_from_external_value(42.5)

        assert machine.state.display == "42.5"
        assert machine.state.waiting_for_new_value is False
        assert machine.show_amount is True

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_external_value_must_be_finite(self, machine, value):
        press(machine, "7")

        with pytest.raises(ValueError):
            machine.set_from_external_value(value)

        assert machine.state.display == "7"

    def test_large_external_value_keeps_all_digits(self, machine):
        machine.set_from_external_value(1e16)

        assert machine.state.display == "10000000000000000"
        assert machine.effective_amount() == 1e16


class TestChainedEvaluation:

    def test_evaluates_left_to_right_without_precedence(self, machine):
        press(machine, "2", "+", "3", "*")
        assert machine.state.display == "5"
        assert machine.state.previous_value == 5

        press(machine, "4")
        assert machine.equals() == 20
        assert machine.state == CalculatorState(display="20")

    def test_subtraction_then_division(self, machine):
        press(machine, "1", "0", "-", "4", "/", "2")
        assert machine.equals() == 3

    def test_operator_is_swapped_before_right_operand(self, machine):
        press(machine, "5", "+", "-")

        assert machine.state.operation == "-"
        assert machine.state.previous_value == 5
        assert machine.state.waiting_for_new_value is True

    def test_equals_without_right_operand_returns_left(self, machine):
        press(machine, "5", "+")

        assert machine.equals() == 5
        assert machine.state.display == "5"
        assert machine.state.operation is None

    def test_equals_without_pending_operation_keeps_state(self, machine):
        press(machine, "8")

        assert machine.equals() == 8
        assert machine.state.display == "8"

    def test_fractional_result_uses_shortest_repr(self, machine):
        press(machine, "1", "/", "4", "=")
        assert machine.state.display == "0.25"


class TestDivisionByZero:

    def test_equals_rejects_and_keeps_state(self, machine):
        press(machine, "8", "/", "0")
        before = machine.snapshot()

        assert machine.equals() is None
        assert machine.state == before

    def test_chained_operator_rejects_and_keeps_state(self, machine):
        press(machine, "8", "/", "0")
        before = machine.snapshot()

        assert machine.enter_operator("+") is False
        assert machine.state == before

    def test_effective_amount_is_none(self, machine):
        press(machine, "8", "/", "0")
        assert machine.effective_amount() is None

    def test_apply_operation_raises(self):
        with pytest.raises(InputRejected):
            apply_operation(1.0, 0.0, "/")


class TestBackspace:

    def test_operator_backspace_restores_left_operand(self, machine):
        press(machine, "5")
        after_five = machine.snapshot()

        press(machine, "+", "Backspace")

        assert machine.state == after_five

    def test_removes_last_digit(self, machine):
        press(machine, "1", "2", "Backspace")
        assert machine.state.display == "1"

    def test_last_digit_resets_to_zero_and_hides_amount(self, machine):
        press(machine, "7", "Backspace")

        assert machine.state.display == "0"
        assert machine.show_amount is False

    def test_negative_sign_alone_resets_to_zero(self, machine):
        machine.set_from_external_value(-3)
        machine.backspace()
        assert machine.state.display == "0"

    def test_right_operand_backspaced_to_empty(self, machine):
        press(machine, "5", "+", "3", "Backspace")

        assert machine.state.display == ""
        assert machine.state.operation == "+"
        assert machine.effective_amount() == 5

        machine.backspace()
        assert machine.state.display == "5"
        assert machine.state.operation is None

    def test_operator_after_emptied_operand_swaps(self, machine):
        press(machine, "5", "+", "3", "Backspace", "*")

        assert machine.state.operation == "*"
        assert machine.state.previous_value == 5


class TestEffectiveAmount:

    def test_previews_pending_operation(self, machine):
        press(machine, "1", "0", "+", "5")

        assert machine.effective_amount() == 15
        # Preview never mutates
        assert machine.state.display == "5"
        assert machine.state.operation == "+"

    def test_zero_is_not_an_amount(self, machine):
        assert machine.effective_amount() is None

    def test_negative_result_is_not_an_amount(self, machine):
        press(machine, "5", "-", "9")
        assert machine.effective_amount() is None


class TestHandleKey:

    def test_comma_is_decimal_point(self, machine):
        press(machine, "7", ",", "5")
        assert machine.state.display == "7.5"

    def test_enter_evaluates(self, machine):
        press(machine, "6", "*", "7", "Enter")
        assert machine.state.display == "42"

    def test_escape_resets(self, machine):
        press(machine, "6", "*", "7", "Escape")
        assert machine.state == CalculatorState()

    def test_delete_acts_as_backspace(self, machine):
        press(machine, "6", "7", "Delete")
        assert machine.state.display == "6"

    def test_unknown_key_is_not_consumed(self, machine):
        assert handle_key(machine, "a") is False
        assert handle_key(machine, "F5") is False
        assert machine.state == CalculatorState()


class TestFormatNumber:

    @pytest.mark.parametrize(
        "value, expected",
        [
            (20.0, "20"),
            (0.0, "0"),
            (-0.0, "0"),
            (42.5, "42.5"),
            (0.1 + 0.2, "0.30000000000000004"),
            (-8.0, "-8"),
            (1e16, "10000000000000000"),
            (1e-07, "0.0000001"),
            (-2.5e-08, "-0.000000025"),
        ],
    )
    def test_format(self, value, expected):
        assert format_number(value) == expected
