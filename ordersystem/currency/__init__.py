"""Currency transition engine (BGN -> EUR cutover)."""

from ordersystem.currency.engine import (
    BGN_PER_EUR,
    EURO_ADOPTION,
    SYMBOLS,
    Currency,
    convert_bgn_to_eur,
    convert_eur_to_bgn,
    convert_usd_to_bgn,
    convert_usd_to_eur,
    currency_for_date,
    current_currency,
    current_symbol,
    format_amount,
    format_bgn_with_conversion,
    format_dual_currency,
    format_with_date,
    is_historical_bgn,
    is_valid_currency,
    round_money,
    supported_currencies,
)

__all__ = [
    "BGN_PER_EUR",
    "EURO_ADOPTION",
    "SYMBOLS",
    "Currency",
    "convert_bgn_to_eur",
    "convert_eur_to_bgn",
    "convert_usd_to_bgn",
    "convert_usd_to_eur",
    "currency_for_date",
    "current_currency",
    "current_symbol",
    "format_amount",
    "format_bgn_with_conversion",
    "format_dual_currency",
    "format_with_date",
    "is_historical_bgn",
    "is_valid_currency",
    "round_money",
    "supported_currencies",
]
