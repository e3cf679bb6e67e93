"""
Fixed-width integer helpers.

Accumulators saturate at U64_MAX; intermediate products that must not
silently wrap go through the checked variants instead.
"""
from ..errors import ErrorCode, ValidationError

U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1


def saturating_add(a: int, b: int, limit: int = U64_MAX) -> int:
    return min(a + b, limit)


def saturating_sub(a: int, b: int) -> int:
    return max(a - b, 0)


def saturate_u64(value: int) -> int:
    """Clamp an unbounded intermediate result into the u64 range."""
    if value < 0:
        return 0
    return min(value, U64_MAX)


def checked_add(a: int, b: int, limit: int = U128_MAX) -> int:
    result = a + b
    if result > limit:
        raise ValidationError(ErrorCode.MATH_OVERFLOW, f"{a} + {b} overflows")
    return result


def checked_mul(a: int, b: int, limit: int = U128_MAX) -> int:
    result = a * b
    if result > limit:
        raise ValidationError(ErrorCode.MATH_OVERFLOW, f"{a} * {b} overflows")
    return result


def checked_div(a: int, b: int) -> int:
    if b == 0:
        raise ValidationError(ErrorCode.MATH_OVERFLOW, "division by zero")
    return a // b
