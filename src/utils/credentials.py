"""Wallet passphrase loading helpers."""

from __future__ import annotations

import os
import re
from typing import Mapping

import keyring
from keyring.errors import KeyringError

DEFAULT_SERVICE_NAME = "amm-fleet"
DEFAULT_PASSPHRASE_ENV = "AMM_FLEET_WALLET_PASSPHRASE"
DEFAULT_PASSPHRASE_USERNAME = "wallet_passphrase"
MIN_PASSPHRASE_LENGTH = 12
_ENV_PATTERN = re.compile(r"^\$\{([A-Z0-9_]+)\}$")


def load_wallet_passphrase(
    service_name: str,
    config: Mapping[str, object] | None = None,
    *,
    passphrase_env: str = DEFAULT_PASSPHRASE_ENV,
    passphrase_username: str = DEFAULT_PASSPHRASE_USERNAME,
) -> str:
    """Load the wallet store passphrase from config, env vars, or keyring in order."""
    passphrase = _resolve_value(config, "wallet_passphrase")

    if not passphrase:
        passphrase = _clean_value(os.getenv(passphrase_env))

    if not passphrase:
        passphrase = _get_keyring_value(service_name, passphrase_username)

    if not passphrase:
        raise ValueError(
            "Wallet passphrase is missing. Provide wallet_passphrase in the config, "
            f"set {passphrase_env}, or store it in the keychain "
            f"for service '{service_name}'."
        )

    return passphrase


def store_wallet_passphrase(
    service_name: str,
    passphrase: str,
    *,
    passphrase_username: str = DEFAULT_PASSPHRASE_USERNAME,
) -> None:
    """Store the wallet passphrase in the OS keychain via keyring."""
    value = _clean_value(passphrase)
    if not value:
        raise ValueError("passphrase must be a non-empty string.")
    if len(value) < MIN_PASSPHRASE_LENGTH:
        raise ValueError(
            f"passphrase must be at least {MIN_PASSPHRASE_LENGTH} characters."
        )
    try:
        keyring.set_password(service_name, passphrase_username, value)
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to store the passphrase in the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc


def _resolve_value(config: Mapping[str, object] | None, key: str) -> str | None:
    if not config or key not in config:
        return None
    raw = config.get(key)
    if not isinstance(raw, str):
        return _clean_value(str(raw)) if raw is not None else None
    raw = raw.strip()
    if not raw:
        return None
    match = _ENV_PATTERN.match(raw)
    if match:
        return _clean_value(os.getenv(match.group(1)))
    return _clean_value(raw)


def _clean_value(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _get_keyring_value(service_name: str, username: str) -> str | None:
    try:
        return _clean_value(keyring.get_password(service_name, username))
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to access the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc
