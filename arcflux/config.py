"""
Configuration.

`ArcConfig` collects the provider locations and contract addresses an `Arc`
context needs. `load_config()` reads them from `ARCFLUX_*` environment
variables:

    ARCFLUX_WEB3_PROVIDER           ledger node URL
    ARCFLUX_IPFS_PROVIDER           IPFS API URL
    ARCFLUX_GRAPHQL_HTTP_PROVIDER   index query URL
    ARCFLUX_GRAPHQL_WS_PROVIDER     index subscription URL
    ARCFLUX_CONTRACT_ADDRESSES      JSON object, contract name -> address
    ARCFLUX_DEFAULT_ACCOUNT         sender used for writes and classification
    ARCFLUX_POLL_INTERVAL           seconds between block polls (default 1.0)
    ARCFLUX_LOG_LEVEL               level for configure_logging (default WARNING)
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from .errors import ConfigurationError, InvalidAddressError
from .keys import Address, check_address

PREFIX = "ARCFLUX_"


@dataclass(frozen=True)
class ArcConfig:
    web3_provider: str = ""
    ipfs_provider: str = ""
    graphql_http_provider: str = ""
    graphql_ws_provider: str = ""
    contract_addresses: Mapping[str, Address] = field(default_factory=dict)
    default_account: Optional[Address] = None
    poll_interval: float = 1.0
    log_level: str = "WARNING"

    def __post_init__(self):
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"poll_interval must be positive, got {self.poll_interval}"
            )
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigurationError(f"Unknown log level: {self.log_level!r}")
        try:
            addresses = {
                name: check_address(address)
                for name, address in dict(self.contract_addresses).items()
            }
            account = (
                check_address(self.default_account)
                if self.default_account
                else None
            )
        except InvalidAddressError as e:
            raise ConfigurationError(str(e)) from e
        object.__setattr__(self, "contract_addresses", addresses)
        object.__setattr__(self, "default_account", account)


def _parse_addresses(raw: Optional[str]) -> Dict[str, str]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{PREFIX}CONTRACT_ADDRESSES is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{PREFIX}CONTRACT_ADDRESSES must be a JSON object")
    return {str(k): str(v) for k, v in data.items()}


def load_config(environ: Optional[Mapping[str, str]] = None) -> ArcConfig:
    env = os.environ if environ is None else environ

    def get(name: str, default: str = "") -> str:
        return (env.get(PREFIX + name) or default).strip()

    raw_interval = get("POLL_INTERVAL", "1.0")
    try:
        interval = float(raw_interval)
    except ValueError as e:
        raise ConfigurationError(f"{PREFIX}POLL_INTERVAL is not a number: {raw_interval!r}") from e

    return ArcConfig(
        web3_provider=get("WEB3_PROVIDER"),
        ipfs_provider=get("IPFS_PROVIDER"),
        graphql_http_provider=get("GRAPHQL_HTTP_PROVIDER"),
        graphql_ws_provider=get("GRAPHQL_WS_PROVIDER"),
        contract_addresses=_parse_addresses(get("CONTRACT_ADDRESSES")),
        default_account=get("DEFAULT_ACCOUNT") or None,
        poll_interval=interval,
        log_level=get("LOG_LEVEL", "WARNING").upper(),
    )


def configure_logging(config: ArcConfig) -> None:
    """Apply `config.log_level` to the root logger, which arcflux logs through."""
    level = getattr(logging, config.log_level.upper(), logging.WARNING)
    logging.getLogger().setLevel(level)
