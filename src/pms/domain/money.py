from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import total_ordering


def _require_int(value: object, what: str) -> int:
    if isinstance(value, Paisa):
        return value.value
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{what} requires an integer, got {type(value).__name__}")
    return int(value)


@total_ordering
class Paisa:
    """Amount in minor currency units (1 rupee = 100 paisa).

    Not an ``int`` subclass, so a float on either side of ``+``, ``-`` or ``*``
    raises TypeError instead of silently producing a fractional amount.
    """

    __slots__ = ("value",)

    def __init__(self, value: object = 0) -> None:
        object.__setattr__(self, "value", _require_int(value, "Paisa"))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("Paisa is immutable")

    @classmethod
    def from_rupees(cls, value: str | int | Decimal) -> "Paisa":
        if isinstance(value, (float, bool)):
            raise TypeError("Rupee amounts must be given as text, int or Decimal.")
        try:
            amount = Decimal(str(value).strip().replace(",", "")) * 100
        except InvalidOperation as exc:
            raise ValueError(f"Invalid rupee amount: {value!r}") from exc
        if amount != amount.to_integral_value():
            raise ValueError(f"Rupee amount has more than two decimals: {value!r}")
        return cls(int(amount))

    def __int__(self) -> int:
        return self.value

    __index__ = __int__

    def __add__(self, other: object) -> "Paisa":
        return Paisa(self.value + _require_int(other, "Paisa addition"))

    __radd__ = __add__

    def __sub__(self, other: object) -> "Paisa":
        return Paisa(self.value - _require_int(other, "Paisa subtraction"))

    def __rsub__(self, other: object) -> "Paisa":
        return Paisa(_require_int(other, "Paisa subtraction") - self.value)

    def __mul__(self, other: object) -> "Paisa":
        if isinstance(other, Paisa):
            raise TypeError("Cannot multiply two Paisa amounts.")
        return Paisa(self.value * _require_int(other, "Paisa multiplication"))

    __rmul__ = __mul__

    def __neg__(self) -> "Paisa":
        return Paisa(-self.value)

    def __abs__(self) -> "Paisa":
        return Paisa(abs(self.value))

    def __truediv__(self, other: object):
        raise TypeError("Paisa does not support true division; use percent_of().")

    __rtruediv__ = __truediv__

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Paisa):
            return self.value == other.value
        if isinstance(other, int) and not isinstance(other, bool):
            return self.value == other
        return NotImplemented

    def __lt__(self, other: object) -> bool:
        if isinstance(other, Paisa):
            return self.value < other.value
        if isinstance(other, int) and not isinstance(other, bool):
            return self.value < other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.value)

    def __bool__(self) -> bool:
        return self.value != 0

    def format_rupees(self, symbol: str = "Rs.") -> str:
        sign = "-" if self.value < 0 else ""
        rupees, paisa = divmod(abs(self.value), 100)
        return f"{sign}{symbol} {rupees:,}.{paisa:02d}"

    def __str__(self) -> str:
        return str(self.value)

    def __repr__(self) -> str:
        return f"Paisa({self.value})"


def _div_round_half_away(numerator: int, denominator: int) -> int:
    q, r = divmod(abs(numerator), denominator)
    if 2 * r >= denominator:
        q += 1
    return q if numerator >= 0 else -q


def clamp_percent(value: object) -> int:
    pct = int(value) if value is not None else 0
    return max(0, min(100, pct))


def percent_of(amount: int, pct: int) -> Paisa:
    return Paisa(_div_round_half_away(int(amount) * int(pct), 100))


def average(total: int, count: int) -> Paisa:
    if count <= 0:
        return Paisa(0)
    return Paisa(_div_round_half_away(int(total), int(count)))


@dataclass(frozen=True)
class BillTotals:
    subtotal: Paisa
    discount_amount: Paisa
    taxable: Paisa
    tax_amount: Paisa
    total: Paisa


def compute_bill_totals(subtotal: int, discount_percent: object, tax_percent: object) -> BillTotals:
    """Discount first, then tax on the discounted amount; each step rounds half away from zero."""
    sub = Paisa(subtotal)
    discount = percent_of(sub, clamp_percent(discount_percent))
    taxable = max(Paisa(0), sub - discount)
    tax = percent_of(taxable, clamp_percent(tax_percent))
    return BillTotals(
        subtotal=sub,
        discount_amount=discount,
        taxable=taxable,
        tax_amount=tax,
        total=taxable + tax,
    )
