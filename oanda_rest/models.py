"""Typed order requests and response shapes.

The client itself returns plain decoded JSON. These models are an optional
typed view on top of it::

    prices = PriceList.model_validate(client.get_prices(["EUR_USD"]))

Prices and amounts are Decimal. Timestamps accept both the epoch-microsecond
strings returned under ``X-Accept-Datetime-Format: UNIX`` and RFC3339 strings,
and become timezone-aware UTC datetimes. Fields the broker adds later are kept
in ``model_extra``.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidOrderError


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an epoch-microsecond or RFC3339 timestamp into a UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, int) or (isinstance(value, str) and value.isdigit()):
        return EPOCH + timedelta(microseconds=int(value))
    if isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ValueError(f"Not a timestamp: {value!r}")


def _as_decimal(value: Any) -> Any:
    # go through str so 1.31513 stays 1.31513 rather than its binary expansion
    if isinstance(value, float):
        return Decimal(str(value))
    return value


Timestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
Amount = Annotated[Decimal, BeforeValidator(_as_decimal)]


class OandaModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# ---------------------------------------------------------------- requests


class OrderRequest(OandaModel):
    """A new order, validated before it is form-encoded.

    ``expiry`` and ``price`` are required for every type except ``market``.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    instrument: str = Field(pattern=r"^[A-Z0-9]+_[A-Z0-9]+$")
    units: int = Field(gt=0)
    side: Literal["buy", "sell"]
    type: Literal["limit", "stop", "marketIfTouched", "market"]
    expiry: Optional[Union[datetime, str]] = None
    price: Optional[Amount] = None
    lower_bound: Optional[Amount] = None
    upper_bound: Optional[Amount] = None
    stop_loss: Optional[Amount] = None
    take_profit: Optional[Amount] = None
    trailing_stop: Optional[Amount] = None

    @model_validator(mode="after")
    def _check_pending_fields(self) -> "OrderRequest":
        if self.type != "market":
            missing = [name for name in ("expiry", "price") if getattr(self, name) is None]
            if missing:
                raise ValueError(f"{' and '.join(missing)} required for {self.type} orders")
        return self

    @classmethod
    def parse(cls, order: Union["OrderRequest", Dict[str, Any]]) -> "OrderRequest":
        """Validate a mapping (wire or snake_case keys) into an OrderRequest.

        Raises:
            InvalidOrderError: If the order is malformed
        """
        if isinstance(order, cls):
            return order
        try:
            return cls.model_validate(order)
        except ValidationError as e:
            raise InvalidOrderError(f"Invalid order: {e}") from e

    def to_form(self, datetime_format: str = "UNIX") -> Dict[str, str]:
        """Render the form-urlencoded body, camelCase keys, unset fields omitted."""
        form = {}
        for key, value in self.model_dump(by_alias=True, exclude_none=True).items():
            if isinstance(value, datetime):
                value = _format_expiry(value, datetime_format)
            elif isinstance(value, Decimal):
                value = format(value, "f")
            form[key] = str(value)
        return form


def _format_expiry(value: datetime, datetime_format: str) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    if datetime_format == "UNIX":
        # same unit the broker uses in UNIX-format responses
        return str((value - EPOCH) // timedelta(microseconds=1))
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------- responses


class Price(OandaModel):
    instrument: str
    time: Timestamp
    bid: Amount
    ask: Amount
    status: Optional[str] = None


class PriceList(OandaModel):
    prices: List[Price] = []


class Account(OandaModel):
    account_id: int
    account_name: Optional[str] = None
    balance: Amount
    unrealized_pl: Optional[Amount] = None
    realized_pl: Optional[Amount] = None
    margin_used: Optional[Amount] = None
    margin_avail: Optional[Amount] = None
    open_trades: Optional[int] = None
    open_orders: Optional[int] = None
    margin_rate: Optional[Amount] = None
    account_currency: Optional[str] = None


class Order(OandaModel):
    id: int
    instrument: str
    units: int
    side: str
    type: str
    time: Timestamp
    price: Amount
    take_profit: Optional[Amount] = None
    stop_loss: Optional[Amount] = None
    expiry: Optional[Timestamp] = None
    upper_bound: Optional[Amount] = None
    lower_bound: Optional[Amount] = None
    trailing_stop: Optional[Amount] = None


class OrderList(OandaModel):
    orders: List[Order] = []


class OrderCreated(OandaModel):
    """Response to a new order: ``orderOpened`` for pending types, ``tradeOpened`` etc. for market."""
    instrument: str
    time: Timestamp
    price: Amount
    order_opened: Optional[Dict[str, Any]] = None
    trade_opened: Optional[Dict[str, Any]] = None
    trades_closed: List[Dict[str, Any]] = []
    trade_reduced: Optional[Dict[str, Any]] = None


class ClosedOrder(OandaModel):
    id: int
    instrument: str
    units: int
    side: str
    price: Amount
    time: Timestamp


class Trade(OandaModel):
    id: int
    units: int
    side: str
    instrument: str
    time: Timestamp
    price: Amount
    take_profit: Optional[Amount] = None
    stop_loss: Optional[Amount] = None
    trailing_stop: Optional[Amount] = None
    trailing_amount: Optional[Amount] = None


class TradeList(OandaModel):
    trades: List[Trade] = []


class ClosedTrade(OandaModel):
    id: int
    price: Amount
    instrument: str
    profit: Amount
    side: str
    time: Timestamp


class Position(OandaModel):
    instrument: str
    units: int
    side: str
    avg_price: Amount


class PositionList(OandaModel):
    positions: List[Position] = []


class Transaction(OandaModel):
    """Common transaction fields; type-specific ones land in ``model_extra``."""
    id: int
    account_id: int
    time: Timestamp
    type: str


class TransactionList(OandaModel):
    transactions: List[Transaction] = []
