"""
Calculator-style amount entry.

A small state machine for chained arithmetic entry: digits build the
current operand, one binary operation can be pending, and a second
operator evaluates the pending one first. Evaluation is strictly
left-to-right with no precedence, the way a pocket calculator behaves
(2 + 3 * 4 gives 20).

States:
- Idle: no pending operation
- PendingOperator: previous_value and operation set, right operand not typed
- EnteringOperand: digits are being appended to display

Division by zero and any other non-finite result are rejected at both
evaluation points (chained operator and equals): the state is left as it
was and the caller gets None / False.
"""

import logging
import math
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from quickentry.utils.constants import OPERATORS
from quickentry.utils.errors import InputRejected

logger = logging.getLogger(__name__)

DIGITS = frozenset("0123456789")
DECIMAL_POINT = "."


@dataclass
class CalculatorState:
    """
    Current calculator state.

    Attributes:
        display: Text of the operand being edited ("" while an operation is
            pending and its right operand was backspaced away)
        previous_value: Left operand of the pending operation
        operation: Pending operator, one of + - * /
        waiting_for_new_value: Next digit starts a fresh operand
    """
    display: str = "0"
    previous_value: Optional[float] = None
    operation: Optional[str] = None
    waiting_for_new_value: bool = False

    @property
    def has_pending_operation(self) -> bool:
        return self.previous_value is not None and self.operation is not None


def parse_display(display: str) -> float:
    """Parse a display string, returning NaN when it is not a number."""
    try:
        return float(display)
    except ValueError:
        return math.nan


def format_number(value: float) -> str:
    """
    Render a number for the display.

    Integral values drop the fractional part (20.0 -> "20"); everything else
    uses the shortest round-trip digits. Exponent notation never reaches the
    display, since the display is parsed back as typed digits.
    """
    if value == 0:
        return "0"
    if value.is_integer():
        return str(int(value))
    text = repr(value)
    if "e" in text:
        # 1e-07 -> "0.0000001"
        text = format(Decimal(text), "f")
    return text


def apply_operation(left: float, right: float, operation: str) -> float:
    """
    Evaluate one binary operation.

    Raises:
        InputRejected: If the result is not a finite number (division by
            zero included)
    """
    if operation == "+":
        result = left + right
    elif operation == "-":
        result = left - right
    elif operation == "*":
        result = left * right
    elif operation == "/":
        if right == 0:
            raise InputRejected(f"Division by zero: {left} / {right}")
        result = left / right
    else:
        raise ValueError(f"Unsupported operation: {operation}")

    if math.isnan(result) or math.isinf(result):
        raise InputRejected(f"Non-finite result: {left} {operation} {right}")
    return result


class CalculatorMachine:
    """Arithmetic entry state machine backing the quick-entry keypad."""

    def __init__(self) -> None:
        self.state = CalculatorState()
        self.show_amount = False

    # --- events ---

    def enter_digit(self, digit: str) -> None:
        if digit not in DIGITS and digit != DECIMAL_POINT:
            raise ValueError(f"Invalid digit: {digit!r}")

        self.show_amount = True
        state = self.state

        if state.waiting_for_new_value:
            state.display = "0." if digit == DECIMAL_POINT else digit
            state.waiting_for_new_value = False
            return

        if digit == DECIMAL_POINT:
            if DECIMAL_POINT in state.display:
                return
            state.display = "0." if state.display in ("0", "") else state.display + "."
            return

        state.display = digit if state.display == "0" else state.display + digit

    def enter_operator(self, operation: str) -> bool:
        """
        Start or chain a binary operation.

        Returns:
            False when chaining evaluated to a non-finite result and the
            event was rejected, True otherwise.
        """
        if operation not in OPERATORS:
            raise ValueError(f"Invalid operation: {operation!r}")

        self.show_amount = True
        state = self.state

        if not state.has_pending_operation:
            current = parse_display(state.display)
            if not math.isfinite(current):
                logger.debug("Operator rejected: display is not a number")
                return False
            state.previous_value = current
            state.operation = operation
            state.waiting_for_new_value = True
            return True

        # Right operand not typed yet: just swap the operator
        if state.waiting_for_new_value or state.display == "":
            state.operation = operation
            state.waiting_for_new_value = True
            return True

        try:
            result = apply_operation(
                state.previous_value, parse_display(state.display), state.operation
            )
        except InputRejected as e:
            logger.debug(f"Chained operator rejected: {e}")
            return False

        state.display = format_number(result)
        state.previous_value = result
        state.operation = operation
        state.waiting_for_new_value = True
        return True

    def backspace(self) -> None:
        state = self.state

        # Empty right operand: delete the operator and go back to the left operand
        if state.has_pending_operation and (
            state.display == "" or state.waiting_for_new_value
        ):
            state.display = format_number(state.previous_value)
            state.previous_value = None
            state.operation = None
            state.waiting_for_new_value = False
            return

        new_display = state.display[:-1]

        if new_display in ("", "-"):
            if state.has_pending_operation:
                state.display = ""
                return
            state.display = "0"
            self.show_amount = False
            return

        state.display = new_display

    def equals(self) -> Optional[float]:
        """
        Evaluate the pending operation.

        Returns:
            The result, or None when it is not a finite number. On None the
            state is left untouched.
        """
        state = self.state
        result = self._compute()
        if result is None:
            logger.debug("Equals rejected: non-finite result")
            return None

        if state.has_pending_operation:
            self.state = CalculatorState(display=format_number(result))
        return result

    def set_from_external_value(self, value: float) -> None:
        """
        Replace the operand with a quick-select value (e.g. a top-used amount chip).

        Raises:
            ValueError: If `value` is not a finite number; the state is left as is.
        """
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Quick-select value must be finite, got {value}")
        self.show_amount = True
        self.state.display = format_number(value)
        self.state.waiting_for_new_value = False

    def reset(self) -> None:
        self.state = CalculatorState()
        self.show_amount = False

    # --- derived values ---

    def effective_amount(self) -> Optional[float]:
        """
        Amount a commit would use right now, without mutating state.

        "10 + 5" yields 15. Non-finite, non-positive or unparsable values
        yield None.
        """
        result = self._compute()
        if result is None or result <= 0:
            return None
        return result

    def snapshot(self) -> CalculatorState:
        return replace(self.state)

    def _compute(self) -> Optional[float]:
        state = self.state
        if not state.has_pending_operation:
            current = parse_display(state.display)
            return current if math.isfinite(current) else None

        if state.waiting_for_new_value or state.display == "":
            return state.previous_value

        try:
            return apply_operation(
                state.previous_value, parse_display(state.display), state.operation
            )
        except InputRejected:
            return None


def handle_key(machine: CalculatorMachine, key: str) -> bool:
    """
    Map a keyboard key to a calculator event.

    Returns:
        True when the key was consumed.
    """
    if len(key) == 1 and key in DIGITS:
        machine.enter_digit(key)
        return True
    if key in (".", ","):
        machine.enter_digit(DECIMAL_POINT)
        return True
    if key in OPERATORS:
        machine.enter_operator(key)
        return True
    if key in ("=", "Enter"):
        machine.equals()
        return True
    if key in ("Backspace", "Delete"):
        machine.backspace()
        return True
    if key == "Escape":
        machine.reset()
        return True
    return False
