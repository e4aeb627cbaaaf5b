"""
admission/shared/quantity.py
─────────────────────────────
Quantity: an exact, comparable, subtractable resource amount.

Why not float?
───────────────
Admission is a boundary check. A request for 3.5 CPU against 3.5 CPU of
available capacity must pass, and 4 − 0.5 must be exactly 3.5 when it is
compared. Floats get most of these right by accident and some of them
wrong (0.1 + 0.2 > 0.3). Quantities are therefore held as Decimal.

Notation
─────────
Quantities accept the Kubernetes resource notation users already write in
their API configs:

    "2"     "1.5"    "500m"   "1e3"            → decimal amounts
    "1k"    "1M"     "1G"                      → decimal SI suffixes
    "512Mi" "8Gi"    "1Ti"                     → binary suffixes (bytes)

ints, floats and Decimals are accepted as plain decimal amounts.

Arithmetic contract
────────────────────
  • subtract(a, b) never clamps. 1 − 2 is −1, and −1 < 0 compares
    correctly, so "negative available capacity" means every positive
    request is infeasible without special-casing.
  • compare() and the ordering operators look at the amount only and
    accept any quantity-like value: compare("1Ki", "1024") is 0.
  • == matches Quantity, int and Decimal by amount, consistently with
    hash(). A string or float never equals a Quantity; use compare() or
    parse it first.
  • NaN and Infinity are rejected when parsing.
  • The result of a subtraction keeps the LEFT operand's display form,
    so capacity − reservation prints the way the capacity was written.

Pydantic integration
─────────────────────
Quantity implements __get_pydantic_core_schema__, so a model field typed
`cpu: Quantity` validates from "500m", 0.5 or Decimal("0.5") and serialises
back to its display string.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

# ── Suffix tables ─────────────────────────────────────────────────────────────

_BINARY_SUFFIXES = {
    "Ki": Decimal(1024),
    "Mi": Decimal(1024) ** 2,
    "Gi": Decimal(1024) ** 3,
    "Ti": Decimal(1024) ** 4,
    "Pi": Decimal(1024) ** 5,
    "Ei": Decimal(1024) ** 6,
}

_DECIMAL_SUFFIXES = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "": Decimal(1),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}

# Exponent form is tried before the single-letter suffixes so "1e3" is 1000,
# while a bare "1E" is still one exa.
_QUANTITY_RE = re.compile(
    r"^(?P<number>[+-]?(?:\d+\.?\d*|\.\d+))"
    r"(?P<suffix>[eE][+-]?\d+|Ki|Mi|Gi|Ti|Pi|Ei|[numkMGTPE])?$"
)

QuantityLike = Union["Quantity", str, int, float, Decimal]


class Quantity:
    """
    An exact resource amount (CPU cores, bytes, ...).

    Attributes:
        value:  The amount as a Decimal, in base units (cores, bytes).
        binary: True when the amount was written with a binary suffix.
                Only affects display.
    """

    __slots__ = ("_value", "_binary")

    def __init__(self, value: Union[Decimal, int, str] = 0, binary: bool = False) -> None:
        self._value = Decimal(value)
        self._binary = binary

    # ── Construction ──────────────────────────────────────────────────────────

    @classmethod
    def parse(cls, raw: QuantityLike) -> "Quantity":
        """
        Build a Quantity from notation or a number.

        Raises:
            ValueError: if `raw` is not a recognised quantity.
        """
        if isinstance(raw, Quantity):
            return raw
        # bool is an int subclass; "cpu: true" is a config mistake, not 1 core
        if isinstance(raw, bool):
            raise ValueError(f"invalid quantity {raw!r}")
        if isinstance(raw, (int, Decimal)):
            return cls._finite(Decimal(raw), raw)
        if isinstance(raw, float):
            return cls._finite(Decimal(repr(raw)), raw)
        if not isinstance(raw, str):
            raise ValueError(f"invalid quantity {raw!r}")

        match = _QUANTITY_RE.match(raw.strip())
        if match is None:
            raise ValueError(f"invalid quantity {raw!r}")

        try:
            number = Decimal(match.group("number"))
        except InvalidOperation as err:
            raise ValueError(f"invalid quantity {raw!r}") from err

        suffix = match.group("suffix") or ""
        try:
            if suffix in _BINARY_SUFFIXES:
                return cls(number * _BINARY_SUFFIXES[suffix], binary=True)
            if suffix in _DECIMAL_SUFFIXES:
                return cls(number * _DECIMAL_SUFFIXES[suffix])
            return cls._finite(number.scaleb(int(suffix[1:])), raw)
        except ArithmeticError as err:
            raise ValueError(f"invalid quantity {raw!r}") from err

    @classmethod
    def _finite(cls, value: Decimal, raw: Any) -> "Quantity":
        # NaN never compares, and Infinity would admit any request
        if not value.is_finite():
            raise ValueError(f"invalid quantity {raw!r}")
        return cls(value)

    # ── Accessors ─────────────────────────────────────────────────────────────

    @property
    def value(self) -> Decimal:
        return self._value

    @property
    def binary(self) -> bool:
        return self._binary

    def is_negative(self) -> bool:
        return self._value < 0

    # ── Arithmetic and ordering ───────────────────────────────────────────────

    def __sub__(self, other: QuantityLike) -> "Quantity":
        return subtract(self, other)

    def __neg__(self) -> "Quantity":
        return Quantity(-self._value, binary=self._binary)

    def __eq__(self, other: object) -> bool:
        # Only types whose hash agrees with hash(Decimal); "1Ki" and 1024.0
        # go through compare() instead.
        if isinstance(other, Quantity):
            return self._value == other._value
        if isinstance(other, (int, Decimal)) and not isinstance(other, bool):
            return self._value == other
        return NotImplemented

    def __lt__(self, other: QuantityLike) -> bool:
        return compare(self, other) < 0

    def __le__(self, other: QuantityLike) -> bool:
        return compare(self, other) <= 0

    def __gt__(self, other: QuantityLike) -> bool:
        return compare(self, other) > 0

    def __ge__(self, other: QuantityLike) -> bool:
        return compare(self, other) >= 0

    def __hash__(self) -> int:
        return hash(self._value)

    # ── Display ───────────────────────────────────────────────────────────────

    def __str__(self) -> str:
        return to_display_string(self)

    def __repr__(self) -> str:
        return f"Quantity({to_display_string(self)!r})"

    # ── Pydantic hook ─────────────────────────────────────────────────────────

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.parse,
            serialization=core_schema.plain_serializer_function_ser_schema(to_display_string),
        )


# ── Module-level operations ───────────────────────────────────────────────────

def compare(a: QuantityLike, b: QuantityLike) -> int:
    """Return -1, 0 or 1 as a is less than, equal to or greater than b."""
    left = Quantity.parse(a).value
    right = Quantity.parse(b).value
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def subtract(a: QuantityLike, b: QuantityLike) -> Quantity:
    """a − b, keeping a's display form. May go negative."""
    left = Quantity.parse(a)
    right = Quantity.parse(b)
    return Quantity(left.value - right.value, binary=left.binary)


def to_display_string(q: QuantityLike) -> str:
    """
    Human-readable form for error messages.

    Decimal amounts print as plain decimals ("3.5", "100", "-0.25").
    Binary amounts print with the largest binary suffix that divides them
    exactly ("8Gi", "7680Mi"), or as plain bytes when none does.
    """
    q = Quantity.parse(q)
    value = q.value
    if value == 0:
        return "0"

    if q.binary and value == value.to_integral_value():
        magnitude = abs(value)
        for suffix, factor in reversed(list(_BINARY_SUFFIXES.items())):
            if magnitude % factor == 0:
                return f"{_plain(value / factor)}{suffix}"

    return _plain(value)


def _plain(value: Decimal) -> str:
    # "f" formatting after normalize() avoids both "3.50" and "1E+2"
    return format(value.normalize(), "f")
