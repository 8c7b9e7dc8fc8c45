# zamail/config.py
"""
ZaMail: Configuration

Environment variables (a `.env` file is loaded first if present):
    ZAMAIL_MOCK_CHAINS        "31337=http://localhost:8545,1337=http://..."
    ZAMAIL_FHEVM_ENABLED      true/false (default true)
    ZAMAIL_SIGNATURE_STORE    path of a JSON signature store (default: memory)
    ZAMAIL_SIGNATURE_DAYS     signature validity override in days
    ZAMAIL_LOG_LEVEL          DEBUG/INFO/WARNING/... (default WARNING)
    ZAMAIL_CONTRACT_<chainId> MessageBoard address override for a chain

Usage:
    config = ZaMailConfig.from_env()
    configure_logging(config.log_level)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Mapping, Union

from dotenv import load_dotenv
from web3 import Web3

from .codec import MAX_MESSAGE_LENGTH
from .fhevm.networks import DEFAULT_MOCK_CHAINS


ENV_PREFIX = "ZAMAIL_"
CONTRACT_PREFIX = ENV_PREFIX + "CONTRACT_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class ZaMailConfig:
    """Runtime settings of a ZaMail client."""
    mock_chains: Dict[int, str] = field(default_factory=lambda: dict(DEFAULT_MOCK_CHAINS))
    fhevm_enabled: bool = True
    max_message_length: int = MAX_MESSAGE_LENGTH
    signature_duration_days: Optional[int] = None
    signature_store_path: Optional[Path] = None
    deployments: Dict[int, str] = field(default_factory=dict)
    log_level: str = "WARNING"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Union[str, Path]] = None,
    ) -> "ZaMailConfig":
        """
        Build a config from environment variables.

        Args:
            environ: Variables to read (os.environ after loading .env if None)
            dotenv_path: Explicit .env file (searched upwards if None)

        Raises:
            ValueError: On a malformed variable (the message names it)
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        config = cls()

        raw = environ.get(ENV_PREFIX + "MOCK_CHAINS")
        if raw is not None and raw.strip():
            config.mock_chains = _parse_mock_chains(raw)

        raw = environ.get(ENV_PREFIX + "FHEVM_ENABLED")
        if raw is not None and raw.strip():
            config.fhevm_enabled = _parse_bool(ENV_PREFIX + "FHEVM_ENABLED", raw)

        raw = environ.get(ENV_PREFIX + "SIGNATURE_STORE")
        if raw:
            config.signature_store_path = Path(raw).expanduser()

        raw = environ.get(ENV_PREFIX + "SIGNATURE_DAYS")
        if raw:
            config.signature_duration_days = _parse_positive_int(ENV_PREFIX + "SIGNATURE_DAYS", raw)

        raw = environ.get(ENV_PREFIX + "LOG_LEVEL")
        if raw:
            level = raw.strip().upper()
            if not isinstance(logging.getLevelName(level), int):
                raise ValueError(f"{ENV_PREFIX}LOG_LEVEL: unknown level {raw!r}")
            config.log_level = level

        for name, value in environ.items():
            if not name.startswith(CONTRACT_PREFIX):
                continue
            suffix = name[len(CONTRACT_PREFIX):]
            try:
                chain_id = int(suffix)
            except ValueError:
                raise ValueError(f"{name}: chain id {suffix!r} is not an integer") from None
            if not Web3.is_address(value):
                raise ValueError(f"{name}: {value!r} is not an address")
            config.deployments[chain_id] = Web3.to_checksum_address(value)

        return config


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name}: expected a boolean, got {raw!r}")


def _parse_positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name}: expected an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name}: must be positive, got {value}")
    return value


def _parse_mock_chains(raw: str) -> Dict[int, str]:
    name = ENV_PREFIX + "MOCK_CHAINS"
    chains: Dict[int, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        chain, sep, url = entry.partition("=")
        if not sep or not url.strip():
            raise ValueError(f"{name}: expected chainId=url, got {entry!r}")
        try:
            chains[int(chain)] = url.strip()
        except ValueError:
            raise ValueError(f"{name}: chain id {chain!r} is not an integer") from None
    return chains


def configure_logging(level: Union[str, int] = "WARNING") -> None:
    """Install a basic stderr handler (command-line use only)."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
