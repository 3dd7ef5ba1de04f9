import socket
import threading
import time
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, NamedTuple, Optional, Union
from urllib.parse import quote

import requests

from .config import ClientConfig
from .errors import DecodeError, TransportError
from .logging_setup import logger
from .models import OrderRequest
from .secrets import OandaCredentials


MAX_COUNT = 500
DEFAULT_COUNT = 50

METHODS = ("GET", "POST", "DELETE")


class ApiRequest(NamedTuple):
    method: str
    url: str
    headers: Mapping[str, str]
    body: Optional[Mapping[str, str]] = None


def clamp_count(count: int) -> int:
    """Cap a result count at the broker's maximum of 500."""
    return MAX_COUNT if count > MAX_COUNT else count


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


def _cut(sock: socket.socket, expired: threading.Event) -> None:
    expired.set()
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # already closed by the reader
        pass


class OandaClient:
    """Blocking client for the OANDA v1 REST API.

    Features:
    - One fixed header set (form content type, datetime format, bearer token), built once.
    - Endpoint methods for prices, account, orders, trades, positions and transactions.
    - Orders validated through ``OrderRequest`` before anything is sent.

    Notes:
    - Responses are returned as decoded JSON, unchanged. Broker errors (4xx/5xx)
      come back the same way; checking them is the caller's job.
    - Transport and decode failures return None. Pass ``raise_errors=True`` to get
      ``TransportError`` / ``DecodeError`` instead.
    - Nothing is retried and no session is kept between calls.
    - TLS certificates are verified unless the config sets ``verify_tls=False``.
    """

    def __init__(self, config: Union[ClientConfig, Mapping[str, Any]], *, raise_errors: bool = False):
        if not isinstance(config, ClientConfig):
            config = ClientConfig.from_mapping(config)
        self.config = config
        self.raise_errors = raise_errors
        self.headers = MappingProxyType({
            "Content-Type": "application/x-www-form-urlencoded",
            "X-Accept-Datetime-Format": config.datetime_format,
            "Authorization": f"Bearer {config.access_token}",
        })
        if not config.verify_tls:
            logger.warning(f"TLS certificate verification disabled for {config.base_url}")

    @classmethod
    def from_credentials(cls, credentials: OandaCredentials, **kwargs) -> "OandaClient":
        """Create OandaClient from OandaCredentials (loaded via secrets module).

        Keyword arguments other than ``raise_errors`` go to ``ClientConfig``.
        """
        raise_errors = kwargs.pop("raise_errors", False)
        config = ClientConfig(
            base_url=credentials.api,
            access_token=credentials.token,
            account_id=credentials.account,
            **kwargs
        )
        return cls(config, raise_errors=raise_errors)

    def __repr__(self) -> str:
        return f"OandaClient(base_url={self.config.base_url!r}, account_id={self.config.account_id!r})"

    # ------------------------------------------------------------ transport

    def request(
        self,
        method: str,
        headers: Mapping[str, str],
        url: str,
        body: Optional[Mapping[str, str]] = None,
    ) -> Optional[Any]:
        """Send one request and return its decoded JSON body.

        Args:
            method: "GET", "POST" or "DELETE"
            headers: Headers to send, normally ``self.headers``
            url: Full URL
            body: Form fields for POST; ignored for other methods

        Returns:
            Decoded JSON (any status code), or None on transport/decode failure
        """
        method = method.upper()
        if method not in METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        return self._send(ApiRequest(method, url, headers, body if method == "POST" else None))

    def _send(self, req: ApiRequest) -> Optional[Any]:
        started = time.monotonic()
        try:
            resp = requests.request(
                req.method,
                req.url,
                headers=dict(req.headers),
                data=dict(req.body) if req.body is not None else None,
                timeout=self.config.timeout,
                verify=self.config.verify_tls,
                stream=True,
            )
            self._read_body(resp, started + self.config.read_timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"{req.method} {req.url} failed: {e}")
            if self.raise_errors:
                raise TransportError(f"Request failed: {e}") from e
            return None

        logger.debug(f"{req.method} {req.url} -> {resp.status_code} in {time.monotonic() - started:.3f}s")

        try:
            return resp.json()
        except ValueError as e:
            logger.warning(f"{req.method} {req.url} returned non-JSON body (status {resp.status_code})")
            if self.raise_errors:
                raise DecodeError(f"{resp.status_code}: response is not valid JSON: {resp.text[:200]}") from e
            return None

    def _read_body(self, resp: requests.Response, deadline: float) -> None:
        """Load the streamed body, cutting the socket once ``deadline`` passes.

        The socket read timeout only bounds each recv, so a server dripping bytes
        could otherwise hold the call open indefinitely.
        """
        conn = getattr(resp.raw, "connection", None)
        sock = getattr(conn, "sock", None)
        expired = threading.Event()
        watchdog = None
        if sock is not None:
            watchdog = threading.Timer(max(deadline - time.monotonic(), 0.0), _cut, (sock, expired))
            watchdog.daemon = True
            watchdog.start()
        try:
            resp.content  # loads and caches the body
        except requests.exceptions.RequestException as e:
            if expired.is_set():
                raise requests.exceptions.ReadTimeout(
                    f"no complete response within {self.config.read_timeout}s"
                ) from e
            raise
        finally:
            if watchdog is not None:
                watchdog.cancel()
            resp.close()
        if expired.is_set():
            raise requests.exceptions.ReadTimeout(f"no complete response within {self.config.read_timeout}s")

    def _account_url(self, *parts: str) -> str:
        url = f"{self.config.base_url}/v1/accounts/{_segment(self.config.account_id)}"
        for part in parts:
            url += f"/{part}"
        return url

    @staticmethod
    def _listing_query(count: int, instrument: str) -> str:
        query = f"?count={clamp_count(count)}"
        if instrument:
            query += f"&instrument={_segment(instrument)}"
        return query

    def _get(self, url: str) -> Optional[Any]:
        return self.request("GET", self.headers, url)

    def _delete(self, url: str) -> Optional[Any]:
        return self.request("DELETE", self.headers, url)

    # ------------------------------------------------------------ rates

    def get_prices(self, instruments: Iterable[str]) -> Optional[Dict[str, Any]]:
        """Current prices for one or more instruments (``XXX_YYY``).

        Returns None without sending anything when the list is empty.
        """
        if isinstance(instruments, str):
            instruments = [instruments]
        codes = [code for code in instruments if code]
        if not codes:
            return None
        # comma sent pre-encoded, the broker expects %2C between codes
        joined = "%2C".join(_segment(code) for code in codes)
        return self._get(f"{self.config.base_url}/v1/prices?instruments={joined}")

    # ------------------------------------------------------------ account

    def get_account_info(self) -> Optional[Dict[str, Any]]:
        return self._get(self._account_url())

    # ------------------------------------------------------------ orders

    def create_order(self, order: Union[OrderRequest, Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        """Open a new order.

        Args:
            order: OrderRequest, or a mapping with wire (camelCase) or snake_case keys

        Raises:
            InvalidOrderError: If the order fails validation; nothing is sent
        """
        req = OrderRequest.parse(order)
        body = req.to_form(self.config.datetime_format)
        logger.info(f"Creating {req.type} {req.side} order: {req.units} {req.instrument}")
        return self.request("POST", self.headers, self._account_url("orders"), body)

    def list_orders(self, count: int = DEFAULT_COUNT, instrument: str = "") -> Optional[Dict[str, Any]]:
        return self._get(self._account_url("orders") + self._listing_query(count, instrument))

    def get_order(self, order_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        return self._get(self._account_url("orders", _segment(order_id)))

    def close_order(self, order_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        logger.info(f"Closing order {order_id}")
        return self._delete(self._account_url("orders", _segment(order_id)))

    # ------------------------------------------------------------ trades

    def list_open_trades(self, count: int = DEFAULT_COUNT, instrument: str = "") -> Optional[Dict[str, Any]]:
        return self._get(self._account_url("trades") + self._listing_query(count, instrument))

    def get_trade(self, trade_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        return self._get(self._account_url("trades", _segment(trade_id)))

    def close_trade(self, trade_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        logger.info(f"Closing trade {trade_id}")
        return self._delete(self._account_url("trades", _segment(trade_id)))

    # ------------------------------------------------------------ positions

    def list_positions(self, instrument: str = "") -> Optional[Dict[str, Any]]:
        """Open positions, all of them or one instrument's.

        With no instrument the URL keeps its trailing slash (``.../positions/``).
        """
        suffix = _segment(instrument) if instrument else ""
        return self._get(self._account_url("positions", suffix))

    # ------------------------------------------------------------ transactions

    def list_transactions(self, count: int = DEFAULT_COUNT, instrument: str = "") -> Optional[Dict[str, Any]]:
        return self._get(self._account_url("transactions") + self._listing_query(count, instrument))

    def get_transaction(self, transaction_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        return self._get(self._account_url("transactions", _segment(transaction_id)))
