"""
Core Data Models for the Order System

These models define the schemas of every record the business keeps:
orders, clients, expense lines, inventory boxes and the business settings.

They are designed to:
1. Validate caller input before it reaches the state hub
2. Compute derived money fields (totals, balances, stock value) in one place
3. Serialize back to the camelCase JSON layout of the persisted store

DESIGN DECISION: The state hub keeps plain JSON dicts, not model instances.
Models are the gate in and out: `Order.from_store(raw)` to read,
`order.to_store()` to persist. Unknown fields are kept (extra="allow") so
data written by newer versions survives a round trip.

Derived fields (`totalEUR`, `balanceEUR`, `value`, ...) are computed at
read time and never persisted.
"""

from datetime import date
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from ordersystem.currency.engine import (
    BGN_PER_EUR,
    Currency,
    convert_usd_to_eur,
    round_money,
)
from ordersystem.utils.dates import is_month_key, month_key


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class OrderStatus(str, Enum):
    """
    Order lifecycle status.

    Values are the Bulgarian labels the business uses; they are persisted as-is.
    """
    PENDING = "Очакван"     # Ordered from the vendor, not yet here
    DELIVERED = "Доставен"  # Handed to the client
    FREE = "Свободен"       # In hand, available for resale
    OTHER = "Други"


STATUS_CLASSES = {
    OrderStatus.DELIVERED.value: "delivered",
    OrderStatus.PENDING.value: "pending",
    OrderStatus.FREE.value: "free",
}


class InventoryType(str, Enum):
    """Box tier."""
    STANDARD = "стандарт"
    PREMIUM = "премиум"


class StockStatus(str, Enum):
    """Stock bucket: 0 is out, 1..2 is low, anything above is in stock."""
    OUT = "out"
    LOW = "low"
    IN = "in"


LOW_STOCK_THRESHOLD = 2


# =============================================================================
# BASE
# =============================================================================

class StoredRecord(BaseModel):
    """
    Base for records persisted as camelCase JSON.

    Subclasses declare snake_case fields with explicit camelCase aliases.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        str_strip_whitespace=True,
    )

    # Computed fields that must not be written back to the store
    derived_fields: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def from_store(cls, raw: dict[str, Any]):
        return cls.model_validate(raw)

    def to_store(self) -> dict[str, Any]:
        """Plain JSON dict in the persisted layout."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude=set(self.derived_fields),
        )

    def to_view(self) -> dict[str, Any]:
        """Persisted layout plus the derived fields."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ORDER
# =============================================================================

class Order(StoredRecord):
    """
    A single watch sale.

    Costs are paid in USD to the vendor and converted at the USD->EUR rate
    captured when the order was created; extras and the selling price are
    kept in EUR regardless of era.
    """

    derived_fields: ClassVar[tuple[str, ...]] = ("total_eur", "balance_eur")

    id: Optional[Union[int, str]] = Field(
        default=None,
        description="YYYYMM * 10000 + per-month sequence, assigned on create"
    )
    order_date: date = Field(
        ...,
        alias="date",
        description="Order date; decides the month partition"
    )
    client: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Client name (clients are referenced by name)"
    )
    phone: str = Field(default="")
    origin: str = Field(default="", description="Sales channel (OLX, Instagram, ...)")
    vendor: str = Field(default="", description="Supplier")
    watch_model: str = Field(default="", alias="model", description="Watch model")
    image_data: Optional[str] = Field(
        default=None,
        alias="imageData",
        description="Data URL or hosted URL of the watch photo"
    )

    cost_usd: float = Field(default=0.0, ge=0, alias="costUSD")
    shipping_usd: float = Field(default=0.0, ge=0, alias="shippingUSD")
    rate: Optional[float] = Field(
        default=None,
        gt=0,
        description="USD->EUR rate captured when the order was created"
    )
    extras_eur: float = Field(default=0.0, ge=0, alias="extrasEUR")
    sell_eur: float = Field(default=0.0, ge=0, alias="sellEUR")

    status: OrderStatus = Field(default=OrderStatus.PENDING)
    full_set: bool = Field(default=False, alias="fullSet")
    notes: str = Field(default="")
    month_key: Optional[str] = Field(
        default=None,
        alias="monthKey",
        description="Month partition; derived from the date"
    )

    @model_validator(mode="before")
    @classmethod
    def drop_stale_derived(cls, data: Any) -> Any:
        """Derived totals from older payloads are recomputed, never trusted."""
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if k not in ("totalEUR", "balanceEUR")}
        return data

    @field_validator("cost_usd", "shipping_usd", "extras_eur", "sell_eur", mode="before")
    @classmethod
    def coerce_money(cls, v: Any) -> Any:
        if v is None or v == "":
            return 0.0
        return v

    @field_validator("cost_usd", "shipping_usd", "extras_eur", "sell_eur")
    @classmethod
    def round_to_cents(cls, v: float) -> float:
        return round_money(v)

    @field_validator("status", mode="before")
    @classmethod
    def unknown_status_is_other(cls, v: Any) -> Any:
        if isinstance(v, OrderStatus):
            return v
        if v in (s.value for s in OrderStatus):
            return v
        return OrderStatus.OTHER

    @model_validator(mode="after")
    def derive_month(self) -> "Order":
        expected = month_key(self.order_date)
        if self.month_key != expected:
            self.month_key = expected
        return self

    @computed_field(alias="totalEUR")
    @property
    def total_eur(self) -> float:
        """Landed cost: (cost + shipping) at the captured rate, plus extras."""
        landed = convert_usd_to_eur(self.cost_usd + self.shipping_usd, self.rate)
        return round_money(landed + self.extras_eur)

    @computed_field(alias="balanceEUR")
    @property
    def balance_eur(self) -> float:
        return round_money(self.sell_eur - self.total_eur)

    @property
    def status_class(self) -> str:
        return STATUS_CLASSES.get(self.status.value, "other")


# =============================================================================
# CLIENT
# =============================================================================

class Client(StoredRecord):
    """
    A buyer.

    Names are unique by case-insensitive trimmed comparison; orders refer
    to clients by name.
    """

    id: Optional[str] = Field(default=None)
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(default="")
    email: str = Field(default="")
    address: str = Field(default="")
    preferred_source: str = Field(default="", alias="preferredSource")
    notes: str = Field(default="")
    created_date: Optional[str] = Field(
        default=None,
        alias="createdDate",
        description="ISO timestamp of creation"
    )

    @property
    def name_key(self) -> str:
        return normalize_name(self.name)


def normalize_name(name: Optional[str]) -> str:
    """Comparison key for client names."""
    return (name or "").strip().casefold()


# =============================================================================
# EXPENSE LINE
# =============================================================================

class ExpenseLine(StoredRecord):
    """
    One monthly expense.

    `amount` is in EUR. Lines converted from BGN keep the original figure
    in `amountBGN`.
    """

    id: Optional[Union[int, str]] = Field(default=None)
    month_key: str = Field(..., alias="monthKey")
    name: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(default=0.0, ge=0)
    currency: Currency = Field(default=Currency.EUR)
    note: str = Field(default="")
    is_default: bool = Field(default=False, alias="isDefault")
    amount_bgn: Optional[float] = Field(default=None, alias="amountBGN")

    @field_validator("month_key")
    @classmethod
    def validate_month_key(cls, v: str) -> str:
        if not is_month_key(v):
            raise ValueError(f"Invalid month key: {v!r} (expected YYYY-MM)")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        if v is None or v == "":
            return 0.0
        return v

    @field_validator("amount")
    @classmethod
    def round_amount(cls, v: float) -> float:
        return round_money(v)


class DefaultExpense(BaseModel):
    """Template entry used to seed a fresh month."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1)
    amount: float = Field(default=0.0, ge=0)
    note: str = Field(default="")


# =============================================================================
# INVENTORY
# =============================================================================

class InventoryItem(StoredRecord):
    """A box of watch packaging kept in stock."""

    derived_fields: ClassVar[tuple[str, ...]] = ("value", "potential_revenue", "stock_status")

    id: Optional[str] = Field(default=None)
    brand: str = Field(..., min_length=1, max_length=100)
    type: InventoryType = Field(default=InventoryType.STANDARD)
    purchase_price: float = Field(default=0.0, ge=0, alias="purchasePrice")
    sell_price: float = Field(default=0.0, ge=0, alias="sellPrice")
    stock: int = Field(default=0, ge=0)
    ordered: int = Field(default=0, ge=0)

    @field_validator("purchase_price", "sell_price")
    @classmethod
    def round_prices(cls, v: float) -> float:
        return round_money(v)

    @computed_field
    @property
    def value(self) -> float:
        return round_money(self.stock * self.purchase_price)

    @computed_field(alias="potentialRevenue")
    @property
    def potential_revenue(self) -> float:
        return round_money(self.stock * self.sell_price)

    @computed_field(alias="stockStatus")
    @property
    def stock_status(self) -> StockStatus:
        if self.stock == 0:
            return StockStatus.OUT
        if self.stock <= LOW_STOCK_THRESHOLD:
            return StockStatus.LOW
        return StockStatus.IN


# =============================================================================
# SETTINGS
# =============================================================================

DEFAULT_USD_RATE = 1.71
DEFAULT_FACTORY_SHIPPING = 1.5

DEFAULT_ORIGINS = [
    "OLX", "Bazar.bg", "Instagram", "WhatsApp",
    "IG Ads", "Facebook", "OLX Romania", "Viber",
]

DEFAULT_VENDORS = [
    "Доставчик 1", "Доставчик 2", "Доставчик 3",
    "AliExpress", "Local Supplier", "China Direct",
]


def unique_ordered(values: Any) -> list[str]:
    """
    Trim, drop empties, collapse duplicates keeping the first occurrence.

    Accepts a list or newline-separated text.
    """
    if values is None:
        return []
    if isinstance(values, str):
        values = values.splitlines()
    seen: set[str] = set()
    result = []
    for value in values:
        text = str(value).strip()
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


class BusinessSettings(StoredRecord):
    """
    Business-wide settings.

    `usdRate` is the legacy USD->BGN rate; `eurRate` is the USD->EUR rate
    new orders capture.
    """

    usd_rate: float = Field(default=DEFAULT_USD_RATE, gt=0, alias="usdRate")
    eur_rate: Optional[float] = Field(default=None, gt=0, alias="eurRate")
    factory_shipping: float = Field(default=DEFAULT_FACTORY_SHIPPING, ge=0, alias="factoryShipping")
    origins: list[str] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))
    vendors: list[str] = Field(default_factory=lambda: list(DEFAULT_VENDORS))
    default_expenses: Optional[list[DefaultExpense]] = Field(
        default=None,
        alias="defaultExpenses",
        description="Template for fresh months; the built-in one is used when absent"
    )

    @field_validator("origins", "vendors", mode="before")
    @classmethod
    def dedupe(cls, v: Any) -> list[str]:
        return unique_ordered(v)

    @model_validator(mode="after")
    def derive_eur_rate(self) -> "BusinessSettings":
        if self.eur_rate is None:
            self.eur_rate = round(self.usd_rate / float(BGN_PER_EUR), 4)
        return self

    def to_store(self) -> dict[str, Any]:
        data = super().to_store()
        if self.default_expenses is None:
            data.pop("defaultExpenses", None)
        return data
