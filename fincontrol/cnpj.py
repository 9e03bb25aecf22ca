from __future__ import annotations

import re
from typing import Optional

CNPJ_LENGTH = 14
FIRST_DIGIT_WEIGHTS = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
SECOND_DIGIT_WEIGHTS = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
NON_DIGITS = re.compile(r"[^0-9]")


def strip_cnpj(value: str) -> str:
    return NON_DIGITS.sub("", value)


def is_valid_cnpj(value: Optional[str]) -> bool:
    # The field is optional, an empty value is accepted.
    if not value:
        return True
    digits = strip_cnpj(value)
    if len(digits) != CNPJ_LENGTH:
        return False
    first = _check_digit(digits[:12], FIRST_DIGIT_WEIGHTS)
    second = _check_digit(digits[:13], SECOND_DIGIT_WEIGHTS)
    return int(digits[12]) == first and int(digits[13]) == second


def normalize_cnpj(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    if not is_valid_cnpj(value):
        raise ValueError("CNPJ inválido.")
    return strip_cnpj(value)


def format_cnpj(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    digits = strip_cnpj(value)
    if len(digits) != CNPJ_LENGTH:
        return value
    return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"


def _check_digit(digits: str, weights: tuple[int, ...]) -> int:
    remainder = sum(int(digit) * weight for digit, weight in zip(digits, weights)) % 11
    return 0 if remainder < 2 else 11 - remainder
