"""
OANDA REST client.

A thin, blocking binding for the OANDA v1 REST trading API:
- Prices, account details, orders, trades, positions and transactions
- One fixed header set (form content type, UNIX datetimes, bearer token)
- Order validation with pydantic before anything is sent
- Optional typed response models (Decimal prices, UTC timestamps)
- Structured logging via loguru
- Configuration from YAML or environment

Core Modules:
    client: OandaClient, the request adapter and endpoint methods
    models: OrderRequest and typed response shapes
    config: ClientConfig and YAML settings loading
    secrets: Credential loading
    errors: Exception types

Example:
    >>> from oanda_rest import OandaClient
    >>> from oanda_rest.secrets import load_credentials
    >>>
    >>> client = OandaClient.from_credentials(load_credentials())
    >>> client.get_prices(["EUR_USD", "USD_JPY"])
"""

from .client import OandaClient
from .config import ClientConfig, Settings
from .errors import (
    ConfigurationError,
    DecodeError,
    InvalidOrderError,
    OandaError,
    TransportError,
)
from .models import OrderRequest

__version__ = "0.1.0"
__all__ = [
    "OandaClient",
    "ClientConfig",
    "Settings",
    "OrderRequest",
    "OandaError",
    "ConfigurationError",
    "TransportError",
    "DecodeError",
    "InvalidOrderError",
]
