from __future__ import annotations

from decimal import Decimal


def rupees(amount: int | float | Decimal | str | None) -> str:
    # Stored value as-is: no rounding, trailing ".00" dropped
    if amount is None:
        return "-"
    d = Decimal(str(amount))
    if d == d.to_integral_value():
        d = d.quantize(Decimal("1"))
    else:
        d = d.normalize()
    return f"₹{d}"
