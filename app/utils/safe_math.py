"""
Checked unsigned arithmetic for counters and pagination windows.

All values live in the unsigned 256-bit range. Any result outside it, and any
division by zero, raises ArithmeticInvariantError instead of wrapping.
"""

from app.core.exceptions import ArithmeticInvariantError

UINT_MAX = 2 ** 256 - 1


def _ensure_uint(value: int, operation: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ArithmeticInvariantError(f"{operation}: operand must be int, got {type(value).__name__}")
    if value < 0 or value > UINT_MAX:
        raise ArithmeticInvariantError(f"{operation}: value out of uint256 range: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    """a + b, raising on overflow"""
    _ensure_uint(a, "add")
    _ensure_uint(b, "add")
    return _ensure_uint(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    """a - b, raising on underflow"""
    _ensure_uint(a, "sub")
    _ensure_uint(b, "sub")
    if b > a:
        raise ArithmeticInvariantError(f"sub: underflow {a} - {b}")
    return a - b


def checked_mul(a: int, b: int) -> int:
    """a * b, raising on overflow"""
    _ensure_uint(a, "mul")
    _ensure_uint(b, "mul")
    return _ensure_uint(a * b, "mul")


def checked_div(a: int, b: int) -> int:
    """Floor division a // b, raising on division by zero"""
    _ensure_uint(a, "div")
    _ensure_uint(b, "div")
    if b == 0:
        raise ArithmeticInvariantError("div: division by zero")
    return a // b
