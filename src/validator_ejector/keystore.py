"""
EIP-2335 keystore codec.

Exit messages handed out by the webhook node, and optionally those stored on
disk, are wrapped in the BLS keystore format: a password-derived key (scrypt
or PBKDF2) encrypts the payload with AES-128-CTR and a SHA-256 checksum
guards against a wrong password.
"""

import hashlib
import json
import logging
import unicodedata
import uuid
from typing import Any

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import scrypt
from Crypto.Random import get_random_bytes

from .errors import DecryptionError

logger = logging.getLogger(__name__)

# Default work factors as used by the staking deposit tooling
SCRYPT_PARAMS: dict[str, int] = {"dklen": 32, "n": 2 ** 18, "r": 8, "p": 1}
PBKDF2_PARAMS: dict[str, Any] = {"dklen": 32, "c": 2 ** 18, "prf": "hmac-sha256"}


def normalize_password(password: str) -> bytes:
    """NFKD-normalise a password and strip C0, C1 and DEL control codes."""
    normalized = unicodedata.normalize("NFKD", password)
    filtered = "".join(
        ch for ch in normalized
        if not (ord(ch) < 0x20 or ord(ch) == 0x7F or 0x80 <= ord(ch) <= 0x9F)
    )
    return filtered.encode("utf-8")


def _derive_key(kdf: dict[str, Any], password: bytes) -> bytes:
    params = kdf["params"]
    salt = bytes.fromhex(params["salt"])

    match kdf["function"]:
        case "scrypt":
            return scrypt(
                password, salt,
                key_len=params["dklen"],
                N=params["n"], r=params["r"], p=params["p"]
            )
        case "pbkdf2":
            if params.get("prf", "hmac-sha256") != "hmac-sha256":
                raise DecryptionError(f"Unsupported PBKDF2 PRF: {params['prf']}")
            return hashlib.pbkdf2_hmac(
                "sha256", password, salt, params["c"], params["dklen"]
            )
        case other:
            raise DecryptionError(f"Unsupported KDF: {other}")


def _checksum(decryption_key: bytes, cipher_message: bytes) -> bytes:
    return hashlib.sha256(decryption_key[16:32] + cipher_message).digest()


def _aes_128_ctr(key: bytes, iv: bytes, data: bytes) -> bytes:
    cipher = AES.new(key[:16], AES.MODE_CTR, nonce=b"", initial_value=iv)
    return cipher.encrypt(data)


def decrypt(keystore: str | dict[str, Any], password: str) -> bytes:
    """Decrypt an EIP-2335 keystore.

    Args:
        keystore: Keystore as JSON text or already-parsed dict
        password: Keystore password

    Returns:
        The decrypted payload

    Raises:
        DecryptionError: If the keystore is malformed, uses unsupported
            primitives, or the password is wrong
    """
    try:
        data = json.loads(keystore) if isinstance(keystore, str) else keystore
        crypto = data["crypto"]
        kdf = crypto["kdf"]
        checksum = crypto["checksum"]
        cipher = crypto["cipher"]

        if checksum["function"] != "sha256":
            raise DecryptionError(f"Unsupported checksum: {checksum['function']}")
        if cipher["function"] != "aes-128-ctr":
            raise DecryptionError(f"Unsupported cipher: {cipher['function']}")

        cipher_message = bytes.fromhex(cipher["message"])
        iv = bytes.fromhex(cipher["params"]["iv"])
        expected_checksum = bytes.fromhex(checksum["message"])
    except DecryptionError:
        raise
    except (ValueError, KeyError, TypeError) as e:
        raise DecryptionError(f"Malformed keystore: {e}") from e

    try:
        decryption_key = _derive_key(kdf, normalize_password(password))
    except (ValueError, KeyError, TypeError) as e:
        raise DecryptionError(f"Malformed keystore KDF section: {e}") from e

    if _checksum(decryption_key, cipher_message) != expected_checksum:
        raise DecryptionError("Checksum mismatch, wrong password or corrupted keystore")

    return _aes_128_ctr(decryption_key, iv, cipher_message)


def encrypt(
    plaintext: bytes,
    password: str,
    kdf: str = "scrypt",
    kdf_params: dict[str, Any] | None = None,
    pubkey: str = "",
    description: str = ""
) -> dict[str, Any]:
    """Wrap ``plaintext`` in an EIP-2335 keystore.

    Args:
        plaintext: Payload to encrypt
        password: Keystore password
        kdf: ``scrypt`` or ``pbkdf2``
        kdf_params: Overrides for the KDF work factors
        pubkey: Optional validator pubkey recorded in the keystore
        description: Optional free-form description

    Returns:
        The keystore as a dict ready for ``json.dumps``
    """
    defaults = {"scrypt": SCRYPT_PARAMS, "pbkdf2": PBKDF2_PARAMS}.get(kdf)
    if defaults is None:
        raise ValueError(f"Unsupported KDF: {kdf}")

    params = {**defaults, **(kdf_params or {}), "salt": get_random_bytes(32).hex()}
    kdf_section = {"function": kdf, "params": params, "message": ""}

    decryption_key = _derive_key(kdf_section, normalize_password(password))
    iv = get_random_bytes(16)
    cipher_message = _aes_128_ctr(decryption_key, iv, plaintext)

    return {
        "crypto": {
            "kdf": kdf_section,
            "checksum": {
                "function": "sha256",
                "params": {},
                "message": _checksum(decryption_key, cipher_message).hex()
            },
            "cipher": {
                "function": "aes-128-ctr",
                "params": {"iv": iv.hex()},
                "message": cipher_message.hex()
            }
        },
        "description": description,
        "pubkey": pubkey.removeprefix("0x"),
        "path": "",
        "uuid": str(uuid.uuid4()),
        "version": 4
    }


def is_keystore(data: Any) -> bool:
    """Whether a parsed JSON document looks like an EIP-2335 keystore."""
    return isinstance(data, dict) and isinstance(data.get("crypto"), dict)
