"""Encrypted on-disk storage for managed bot wallets, keyed by network."""

from __future__ import annotations

import base64
import json
import logging
import os
import secrets
from pathlib import Path
from typing import Any, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from solders.keypair import Keypair

LOGGER = logging.getLogger("amm_fleet.wallet_store")

STORE_VERSION = 1
DEFAULT_SCRYPT_N = 2**15
SCRYPT_R = 8
SCRYPT_P = 1
KEY_LENGTH = 32
SALT_LENGTH = 16
NONCE_LENGTH = 12


class WalletStoreError(RuntimeError):
    """Raised when stored wallets cannot be written or decrypted."""


class WalletStore:
    """Persist keypairs per network, encrypted with AES-GCM under a scrypt key.

    The network name is bound to each file as associated data, so a file
    copied between networks fails authentication instead of loading silently.
    A failed load never deletes the stored file.
    """

    def __init__(
        self,
        directory: str | Path,
        passphrase: str,
        *,
        scrypt_n: int = DEFAULT_SCRYPT_N,
    ) -> None:
        if not passphrase:
            raise ValueError("passphrase must be a non-empty string.")
        self.directory = Path(directory)
        self._passphrase = passphrase.encode("utf-8")
        self._scrypt_n = scrypt_n

    def path_for(self, network: str) -> Path:
        return self.directory / f"bot-wallets-{network}.json"

    def save(self, network: str, wallets: Sequence[Keypair]) -> None:
        salt = secrets.token_bytes(SALT_LENGTH)
        nonce = secrets.token_bytes(NONCE_LENGTH)
        key = self._derive_key(salt, self._scrypt_n)
        plaintext = json.dumps([list(bytes(wallet)) for wallet in wallets]).encode(
            "utf-8"
        )
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, network.encode("utf-8"))
        payload = {
            "version": STORE_VERSION,
            "network": network,
            "kdf": {
                "name": "scrypt",
                "salt": _b64encode(salt),
                "n": self._scrypt_n,
                "r": SCRYPT_R,
                "p": SCRYPT_P,
            },
            "nonce": _b64encode(nonce),
            "ciphertext": _b64encode(ciphertext),
        }
        target = self.path_for(network)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.chmod(tmp_path, 0o600)
            tmp_path.replace(target)
        except OSError as exc:
            raise WalletStoreError(
                f"Failed to save bot wallets for {network}: {exc}"
            ) from exc
        LOGGER.info("Saved %s bot wallet(s) for %s.", len(wallets), network)

    def load(self, network: str) -> list[Keypair]:
        target = self.path_for(network)
        if not target.exists():
            return []
        try:
            payload = json.loads(target.read_text(encoding="utf-8"))
            kdf = payload["kdf"]
            key = self._derive_key(_b64decode(kdf["salt"]), int(kdf["n"]))
            nonce = _b64decode(payload["nonce"])
            ciphertext = _b64decode(payload["ciphertext"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise WalletStoreError(
                f"Stored wallets for {network} are unreadable: {exc}"
            ) from exc
        try:
            plaintext = AESGCM(key).decrypt(nonce, ciphertext, network.encode("utf-8"))
        except InvalidTag as exc:
            raise WalletStoreError(
                f"Failed to decrypt bot wallets for {network}. "
                "Check the wallet passphrase; the stored file was left untouched."
            ) from exc
        secret_keys: list[Any] = json.loads(plaintext)
        wallets = [Keypair.from_bytes(bytes(secret)) for secret in secret_keys]
        LOGGER.info("Loaded %s bot wallet(s) for %s.", len(wallets), network)
        return wallets

    def clear(self, network: str) -> None:
        target = self.path_for(network)
        if target.exists():
            target.unlink()
        LOGGER.info("Cleared bot wallets for %s.", network)

    def _derive_key(self, salt: bytes, n: int) -> bytes:
        kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=n, r=SCRYPT_R, p=SCRYPT_P)
        return kdf.derive(self._passphrase)


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)
