"""
Currency Transition Engine

Bulgaria adopts the euro on 2026-01-01 at the irrevocably fixed rate
1 EUR = 1.95583 BGN. Every money-valued read and write in the system goes
through this module:

- which currency is active for a given date (BGN before the cutover,
  EUR from the cutover instant on)
- fixed-rate BGN <-> EUR conversion and market-rate USD conversion
- rounding to the cent
- formatting ("12.34 €", "1000.00 лв (511.29 €)")

DESIGN DECISION: All arithmetic is done on Decimal built from the
decimal text of the input, so 1.005 rounds to 1.01 exactly as a person
would round it. Ties go away from zero. Results are returned as floats
because that is what the persisted JSON carries.

No component outside this module formats money.
"""

from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union

from ordersystem.utils.clock import Clock


class Currency(str, Enum):
    """Currencies the business deals in."""
    BGN = "BGN"
    EUR = "EUR"
    USD = "USD"


# Official EU-approved conversion rate
BGN_PER_EUR = Decimal("1.95583")

# Cutover instant, naive local time
EURO_ADOPTION = datetime(2026, 1, 1, 0, 0, 0)

SYMBOLS = {
    Currency.BGN: "лв",
    Currency.EUR: "€",
    Currency.USD: "$",
}

NAMES = {
    Currency.BGN: "Bulgarian Lev",
    Currency.EUR: "Euro",
    Currency.USD: "US Dollar",
}

CENT = Decimal("0.01")

Amount = Union[int, float, Decimal, str, None]
DateInput = Union[date, datetime, str, None]


# =============================================================================
# ROUNDING
# =============================================================================

def to_decimal(amount: Any) -> Optional[Decimal]:
    """
    Decimal value of an amount, or None for nullish / NaN / garbage input.
    """
    if amount is None or isinstance(amount, bool):
        return None
    if isinstance(amount, Decimal):
        value = amount
    else:
        try:
            value = Decimal(str(amount).strip())
        except (InvalidOperation, ValueError):
            return None
    if value.is_nan() or value.is_infinite():
        return None
    return value


def round_cents(value: Decimal) -> Decimal:
    """Round to the nearest cent, ties away from zero."""
    rounded = value.quantize(CENT, rounding=ROUND_HALF_UP)
    # Avoid "-0.00"
    if rounded == 0:
        return Decimal("0.00")
    return rounded


def round_money(amount: Amount) -> float:
    """Canonical rounding rule for every stored or derived money value."""
    value = to_decimal(amount)
    if value is None:
        return 0.0
    return float(round_cents(value))


# =============================================================================
# CONVERSION
# =============================================================================

def convert_bgn_to_eur(amount_bgn: Amount) -> float:
    """Fixed-rate conversion; 0 for nullish or NaN input."""
    value = to_decimal(amount_bgn)
    if value is None:
        return 0.0
    return float(round_cents(value / BGN_PER_EUR))


def convert_eur_to_bgn(amount_eur: Amount) -> float:
    """Fixed-rate conversion; 0 for nullish or NaN input."""
    value = to_decimal(amount_eur)
    if value is None:
        return 0.0
    return float(round_cents(value * BGN_PER_EUR))


def convert_usd_to_eur(amount_usd: Amount, usd_to_eur_rate: Amount) -> float:
    """Market-rate conversion; 0 when either the amount or the rate is missing."""
    value = to_decimal(amount_usd)
    rate = to_decimal(usd_to_eur_rate)
    if not value or not rate:
        return 0.0
    return float(round_cents(value * rate))


def convert_usd_to_bgn(amount_usd: Amount, usd_to_bgn_rate: Amount) -> float:
    """Market-rate conversion; 0 when either the amount or the rate is missing."""
    value = to_decimal(amount_usd)
    rate = to_decimal(usd_to_bgn_rate)
    if not value or not rate:
        return 0.0
    return float(round_cents(value * rate))


# =============================================================================
# DATE GATE
# =============================================================================

def _as_local_datetime(value: Union[date, datetime, str]) -> datetime:
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            value = date.fromisoformat(text)
        else:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value
    return datetime.combine(value, time.min)


def currency_for_date(
    when: DateInput = None,
    clock: Optional[Clock] = None,
) -> Currency:
    """EUR on or after the cutover instant, BGN before it."""
    if when is None:
        when = clock.now() if clock else datetime.now()
    return Currency.EUR if _as_local_datetime(when) >= EURO_ADOPTION else Currency.BGN


def is_historical_bgn(when: DateInput) -> bool:
    """True for dates strictly before the cutover; False when no date is given."""
    if not when:
        return False
    return _as_local_datetime(when) < EURO_ADOPTION


def current_currency(clock: Optional[Clock] = None) -> Currency:
    """Currency for new transactions."""
    return currency_for_date(None, clock)


def current_symbol(clock: Optional[Clock] = None) -> str:
    return SYMBOLS[current_currency(clock)]


def is_valid_currency(code: Any) -> bool:
    return code in {c.value for c in Currency}


def supported_currencies() -> list[dict]:
    return [
        {"code": Currency.EUR.value, "symbol": SYMBOLS[Currency.EUR], "name": NAMES[Currency.EUR], "primary": True},
        {"code": Currency.BGN.value, "symbol": SYMBOLS[Currency.BGN], "name": NAMES[Currency.BGN], "historical": True},
        {"code": Currency.USD.value, "symbol": SYMBOLS[Currency.USD], "name": NAMES[Currency.USD], "foreign": True},
    ]


# =============================================================================
# FORMATTING
# =============================================================================

def format_amount(
    amount: Amount,
    currency: Union[Currency, str] = Currency.EUR,
    show_code: bool = False,
) -> str:
    """
    "12.34 €", or "12.34 EUR" with show_code.

    Unknown currency codes are printed as-is in place of a symbol.
    """
    value = to_decimal(amount)
    formatted = f"{round_cents(value if value is not None else Decimal(0)):.2f}"

    code = currency.value if isinstance(currency, Currency) else str(currency)
    if show_code:
        return f"{formatted} {code}"

    symbol = SYMBOLS.get(Currency(code), code) if is_valid_currency(code) else code
    return f"{formatted} {symbol}"


def format_bgn_with_conversion(amount_bgn: Amount, show_conversion: bool = True) -> str:
    """Historical BGN amount with the EUR equivalent: "1000.00 лв (511.29 €)"."""
    bgn_formatted = format_amount(amount_bgn, Currency.BGN)
    if not show_conversion:
        return bgn_formatted
    eur_formatted = format_amount(convert_bgn_to_eur(amount_bgn), Currency.EUR)
    return f"{bgn_formatted} ({eur_formatted})"


def format_dual_currency(
    amount_bgn: Amount,
    amount_eur: Amount,
    primary: Union[Currency, str] = Currency.EUR,
) -> str:
    if primary == Currency.EUR:
        return f"{format_amount(amount_eur, Currency.EUR)} ({format_amount(amount_bgn, Currency.BGN)})"
    return f"{format_amount(amount_bgn, Currency.BGN)} ({format_amount(amount_eur, Currency.EUR)})"


def format_with_date(
    amount: Amount,
    when: DateInput,
    source_currency: Union[Currency, str, None] = Currency.BGN,
    show_conversion: bool = True,
) -> str:
    """
    Format an amount according to the era it belongs to.

    Pre-cutover BGN amounts get the parenthetical EUR equivalent.
    """
    if source_currency == Currency.BGN and is_historical_bgn(when) and show_conversion:
        return format_bgn_with_conversion(amount, True)

    currency = source_currency or currency_for_date(when)
    return format_amount(amount, currency)
