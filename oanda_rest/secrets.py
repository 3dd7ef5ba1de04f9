"""Secrets management: load OANDA credentials from environment or config file.

Priority order:
1. Environment variables: OANDA_API_URL, OANDA_TOKEN, OANDA_ACCOUNT
2. Config file: ~/.oanda_config.json or custom path via ENV OANDA_CONFIG_PATH

Credentials are only ever read here, never written.
"""
import json
import os
from pathlib import Path
from typing import NamedTuple, Optional

from .errors import ConfigurationError


class OandaCredentials(NamedTuple):
    api: str
    token: str
    account: str


def load_credentials(
    config_path: Optional[str] = None,
) -> OandaCredentials:
    """Load OANDA credentials from env or config file.

    Environment values win field by field; the file fills whatever is unset.

    Args:
        config_path: Optional override path to config file. If not provided,
                     checks OANDA_CONFIG_PATH env var, then ~/.oanda_config.json

    Returns:
        OandaCredentials with api, token, account

    Raises:
        ConfigurationError: If credentials are not found or incomplete
    """
    api = os.getenv("OANDA_API_URL")
    token = os.getenv("OANDA_TOKEN")
    account = os.getenv("OANDA_ACCOUNT")

    if api and token and account:
        return OandaCredentials(api=api, token=token, account=account)

    if config_path is None:
        config_path = os.getenv("OANDA_CONFIG_PATH")
    if config_path is None:
        config_path = str(Path.home() / ".oanda_config.json")

    config_file = Path(config_path)
    if config_file.exists():
        try:
            with config_file.open("r") as f:
                cfg = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to load config from {config_path}: {e}")
        api = api or cfg.get("api")
        token = token or cfg.get("token")
        account = account or cfg.get("account")

    if not api or not token or not account:
        raise ConfigurationError(
            "Missing OANDA credentials. Provide via:\n"
            "  - Environment: OANDA_API_URL, OANDA_TOKEN, OANDA_ACCOUNT\n"
            f"  - Config file: {config_path}\n"
            "  - OANDA_CONFIG_PATH env var to override config location"
        )

    return OandaCredentials(api=api, token=token, account=str(account))
