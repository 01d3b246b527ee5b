#!/usr/bin/env python3
"""
Currency and Text Formatters

Pure functions normalizing free-form numeric/text input into pt-BR
display strings. None of them performs I/O.

Usage:
    from notification_composer.services.formatters import format_currency

    format_currency("12345")  # 'R$ 123,45'
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from ..config.composer_config import LocaleConfig


class InvalidFieldError(ValueError):
    """Raised when a field value is rejected at the model boundary"""
    pass


_NON_DIGITS = re.compile(r'\D')
_CENTS = Decimal('0.01')


def digits_only(value: str) -> str:
    """
    Strip every non-digit character

    Example:
        >>> digits_only("R$ 1.234,56")
        '123456'
    """
    return _NON_DIGITS.sub('', value or '')


def _group_thousands(integer_digits: str) -> str:
    """Insert the pt-BR thousands separator every three digits"""
    groups = []
    while len(integer_digits) > 3:
        groups.insert(0, integer_digits[-3:])
        integer_digits = integer_digits[:-3]
    groups.insert(0, integer_digits)
    return LocaleConfig.THOUSANDS_SEPARATOR.join(groups)


def format_currency(raw_digits: str) -> str:
    """
    Format a digit string as pt-BR currency

    The input is read as a fixed-point value in hundredths, so "12345"
    means 123.45. Non-digit characters are stripped first, which makes
    the function total and idempotent on its own output.

    Args:
        raw_digits: Free-form input (e.g., "12345" or "R$ 123,45")

    Returns:
        Formatted currency string, or '' when no digits remain

    Example:
        >>> format_currency("12345")
        'R$ 123,45'
        >>> format_currency("abc")
        ''
    """
    numeric = digits_only(raw_digits)

    # Guard clause: nothing to format
    if not numeric:
        return ''

    cents = int(numeric)
    integer_part, fraction = divmod(cents, 100)
    return (
        f"{LocaleConfig.CURRENCY_SYMBOL}{LocaleConfig.CURRENCY_SEPARATOR}"
        f"{_group_thousands(str(integer_part))}"
        f"{LocaleConfig.DECIMAL_SEPARATOR}{fraction:02d}"
    )


def format_amount(amount: Union[Decimal, int, float]) -> str:
    """
    Render a canonical amount for display

    Negative and zero amounts are rendered as-is.

    Args:
        amount: Raw numeric amount (e.g., Decimal('123.45'))

    Returns:
        Formatted currency string (e.g., 'R$ 123,45' or '-R$ 5,00')
    """
    value = Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    cents = int(abs(value) * 100)
    formatted = format_currency(str(cents))
    return f"-{formatted}" if value < 0 else formatted


def parse_amount(value: Union[str, int, float, Decimal]) -> Decimal:
    """
    Parse user input into a canonical amount

    Accepts numbers, plain decimal strings ("123.45") and pt-BR strings
    ("R$ 1.234,56").

    Args:
        value: Raw input

    Returns:
        Decimal amount

    Raises:
        InvalidFieldError: If the input is not numeric
    """
    if isinstance(value, bool):
        raise InvalidFieldError(f"Invalid amount: {value!r}")

    if isinstance(value, (int, float, Decimal)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            raise InvalidFieldError(f"Invalid amount: {value!r}")
        if not parsed.is_finite():
            raise InvalidFieldError(f"Invalid amount: {value!r}")
        return parsed

    text = str(value).replace(LocaleConfig.CURRENCY_SYMBOL, '')
    text = text.replace('\u00a0', '').replace(' ', '').strip()

    # pt-BR input: '.' groups thousands, ',' separates decimals
    if LocaleConfig.DECIMAL_SEPARATOR in text:
        text = text.replace(LocaleConfig.THOUSANDS_SEPARATOR, '')
        text = text.replace(LocaleConfig.DECIMAL_SEPARATOR, '.')

    try:
        parsed = Decimal(text)
    except InvalidOperation:
        raise InvalidFieldError(f"Invalid amount: {value!r}")

    if not parsed.is_finite():
        raise InvalidFieldError(f"Invalid amount: {value!r}")
    return parsed


def current_time_text(now: Optional[datetime] = None) -> str:
    """Wall-clock time as shown on notifications (HH:MM)"""
    return (now or datetime.now()).strftime(LocaleConfig.TIME_FORMAT)
