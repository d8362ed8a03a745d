from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Union

Number = Union[int, float, Decimal, str]


def format_euro(value: Number) -> str:
    """
    Formats an amount the way German invoices and emails show it: 1.234,56 €
    Unparseable input renders as 0,00 €.
    """
    try:
        if isinstance(value, str):
            value = value.replace(",", ".")
        amount = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except Exception:
        return "0,00 €"

    sign = "-" if amount < 0 else ""
    integer, fraction = f"{abs(amount):.2f}".split(".")
    groups = []
    while len(integer) > 3:
        groups.insert(0, integer[-3:])
        integer = integer[:-3]
    groups.insert(0, integer)
    return f"{sign}{'.'.join(groups)},{fraction} €"


def stringify(value: Any) -> str:
    """String form of a template value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "\n".join(stringify(v) for v in value)
    return str(value)
