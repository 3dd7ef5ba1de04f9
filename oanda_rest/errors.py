"""Exception types raised by the OANDA REST client."""


class OandaError(Exception):
    pass


class ConfigurationError(OandaError, ValueError):
    """Raised when a required credential or config field is missing or empty."""
    pass


class TransportError(OandaError):
    """Raised for connection, TLS and timeout failures (only when ``raise_errors`` is set)."""
    pass


class DecodeError(OandaError):
    """Raised when a response body is not valid JSON (only when ``raise_errors`` is set)."""
    pass


class InvalidOrderError(OandaError, ValueError):
    """Raised when an order fails validation before it is sent."""
    pass
