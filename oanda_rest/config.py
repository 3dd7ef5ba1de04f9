"""Configuration for the OANDA client.

``ClientConfig`` is the immutable connection value every client is built from.
``Settings`` loads client and logging settings from YAML with environment
variable interpolation, so tokens can stay out of the file itself.
"""
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .errors import ConfigurationError


ENVIRONMENTS = {
    "sandbox": "http://api-sandbox.oanda.com",
    "practice": "https://api-fxpractice.oanda.com",
    "live": "https://api-fxtrade.oanda.com",
}

DATETIME_FORMATS = ("UNIX", "RFC3339")

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# credential-file key -> ClientConfig field
_CREDENTIAL_KEYS = {
    "api": "base_url",
    "token": "access_token",
    "account": "account_id",
}


def resolve_base_url(environment: str) -> str:
    """Map an environment name (sandbox, practice, live) to its REST base URL."""
    try:
        return ENVIRONMENTS[environment.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown environment {environment!r}; expected one of {', '.join(ENVIRONMENTS)}"
        )


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for one account.

    The access token is kept out of ``repr`` so configs can be logged safely.
    ``read_timeout`` bounds each socket read and also the whole call, measured
    from the moment the request is sent until the body is fully read.
    TLS verification is on unless ``verify_tls`` is explicitly set to False.
    """
    base_url: str
    access_token: str = field(repr=False)
    account_id: str
    connect_timeout: float = 5.0
    read_timeout: float = 10.0
    verify_tls: bool = True
    datetime_format: str = "UNIX"

    def __post_init__(self):
        for name in ("base_url", "access_token", "account_id"):
            value = getattr(self, name)
            if value is None or not str(value).strip():
                raise ConfigurationError(f"Missing required client setting: {name}")
        # account ids arrive as ints from JSON/YAML
        object.__setattr__(self, "account_id", str(self.account_id).strip())
        object.__setattr__(self, "base_url", str(self.base_url).rstrip("/"))
        if self.datetime_format not in DATETIME_FORMATS:
            raise ConfigurationError(
                f"datetime_format must be one of {DATETIME_FORMATS}, got {self.datetime_format!r}"
            )

    @property
    def timeout(self) -> tuple:
        """(connect, read) timeout tuple in the form requests expects."""
        return (self.connect_timeout, self.read_timeout)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ClientConfig":
        """Build a config from a mapping.

        Accepts the credential-file keys (``api``, ``token``, ``account``),
        the field names themselves, or ``environment`` instead of a base URL.

        Raises:
            ConfigurationError: If a required field is missing or empty
        """
        kwargs = {}
        for key, value in data.items():
            name = _CREDENTIAL_KEYS.get(key, key)
            if name == "environment":
                if value and not data.get("base_url") and not data.get("api"):
                    kwargs["base_url"] = resolve_base_url(str(value))
                continue
            kwargs[name] = value

        missing = [name for name in ("base_url", "access_token", "account_id") if not kwargs.get(name)]
        if missing:
            raise ConfigurationError(f"Missing required client setting(s): {', '.join(missing)}")

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise ConfigurationError(f"Unknown client setting(s): {', '.join(unknown)}")
        return cls(**kwargs)


@dataclass
class LoggingConfig:
    """Log sink settings."""
    log_file: Optional[str] = "oanda.log"
    level: str = "INFO"
    enable_console: bool = True


@dataclass
class Settings:
    """Complete client configuration."""
    client: ClientConfig
    logging: LoggingConfig

    @classmethod
    def from_yaml(cls, config_path: str) -> "Settings":
        """Load settings from a YAML file with env var interpolation.

        Args:
            config_path: Path to YAML config file

        Returns:
            Settings instance

        Example YAML:
            client:
              environment: practice
              access_token: "${OANDA_TOKEN}"
              account_id: "${OANDA_ACCOUNT}"
            logging:
              level: DEBUG
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with config_file.open("r") as f:
            raw = f.read()

        # Interpolate environment variables: ${VAR_NAME}
        for key, value in os.environ.items():
            raw = raw.replace(f"${{{key}}}", value)

        unresolved = sorted(set(_PLACEHOLDER.findall(raw)))
        if unresolved:
            raise ConfigurationError(
                f"Unset environment variable(s) in {config_path}: {', '.join(unresolved)}"
            )

        data = yaml.safe_load(raw) or {}

        client_data = data.get("client")
        if not client_data:
            raise ConfigurationError(f"No 'client' section in {config_path}")

        return cls(
            client=ClientConfig.from_mapping(client_data),
            logging=LoggingConfig(**data.get("logging", {})),
        )
