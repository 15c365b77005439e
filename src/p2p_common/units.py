"""Integer arithmetic utilities for minor-unit amounts.

All amounts, prices and balances are int minor units. No float, no Decimal.
An asset's minor unit is 10**-decimals of one whole unit; prices are quoted in
counter-asset minor units per whole asset unit.
"""

from config.settings import settings


def asset_decimals(asset: str) -> int:
    return settings.ASSET_DECIMALS.get(asset.upper(), settings.DEFAULT_ASSET_DECIMALS)


def trade_total(amount: int, price: int, decimals: int) -> int:
    """Counter-asset minor units owed for `amount` asset minor units.

    total = ceil(amount * price / 10**decimals), so the seller is never
    short-changed by rounding. Integer ceiling: (a + b - 1) // b
    """
    if amount == 0 or price == 0:
        return 0
    scale = 10**decimals
    return (amount * price + scale - 1) // scale


def format_minor(amount: int, decimals: int) -> str:
    """Render minor units for logs and messages: (123456, 2) -> '1,234.56'."""
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10**decimals)
    if decimals == 0:
        return f"{sign}{whole:,}"
    return f"{sign}{whole:,}.{frac:0{decimals}d}"
