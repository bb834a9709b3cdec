"""Output comparison for judged test cases.

`compare` is total: any input pair yields a bool and malformed numbers in
float mode fall back to plain token equality.
"""
import math
from typing import List, Optional

from schemas import CheckerConfig, CheckerKind


def _tokens(s: str) -> List[str]:
    return s.split()


_RADIX_PREFIXES = {"0x": 16, "0o": 8, "0b": 2}


def _to_finite(token: str) -> Optional[float]:
    # python accepts digit separators, numeric output never does
    if "_" in token:
        return None
    radix = _RADIX_PREFIXES.get(token[:2].lower())
    if radix:
        # unsigned only: "-0x10" is not a number
        digits = token[2:]
        if not digits.isalnum():
            return None
        try:
            return float(int(digits, radix))
        except ValueError:
            return None
    try:
        value = float(token)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _floats_match(actual: List[str], expected: List[str], tolerance: float) -> bool:
    if len(actual) != len(expected):
        return False
    for a, e in zip(actual, expected):
        a_num = _to_finite(a)
        e_num = _to_finite(e)
        if a_num is not None and e_num is not None:
            if abs(a_num - e_num) > tolerance:
                return False
        elif a != e:
            return False
    return True


def compare(actual: str, expected: str, config: CheckerConfig) -> bool:
    actual = actual or ""
    expected = expected or ""
    if config.case_insensitive:
        actual = actual.lower()
        expected = expected.lower()

    if config.kind == CheckerKind.TRIM:
        return actual.strip() == expected.strip()
    if config.kind == CheckerKind.TOKEN:
        return _tokens(actual) == _tokens(expected)
    if config.kind == CheckerKind.FLOAT_TOLERANCE:
        return _floats_match(_tokens(actual), _tokens(expected), config.tolerance)
    return actual == expected
