"""
Payload encryption for log messages.

Every message is sealed with AES-256-GCM under a key derived from the shared
secret and a fresh random salt (PBKDF2-HMAC-SHA256, 600k iterations). The
ciphertext, IV and salt travel base64-encoded alongside the entry so the
receiving side can re-derive the key.
"""

import base64
import binascii
import os
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Tuple

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..models.log_entry import EncryptionMode
from .exceptions import EncryptionError

logger = structlog.get_logger(__name__)

GCM_IV_LENGTH = 12  # 96 bits
GCM_TAG_LENGTH = 16  # 128 bits
KEY_LENGTH = 32  # 256 bits
SALT_LENGTH = 32  # 256 bits
PBKDF2_ITERATIONS = 600_000

TOKEN_SEPARATOR = "."
KEY_CACHE_SIZE = 256


@dataclass(frozen=True)
class EncryptionResult:
    """Components of one sealed message, all base64 text."""
    encrypted_payload: str
    iv: str
    salt: str
    encryption_mode: EncryptionMode


class Encryptor:
    """
    Encrypts and decrypts log payloads with a shared secret.

    Derived keys are cached per (secret, mode, salt), least recently used
    first out once ``max_cached_keys`` keys are held. Encryption may run on
    worker threads, so the cache is lock-protected.
    """

    def __init__(
        self,
        secret: str,
        default_mode: EncryptionMode = EncryptionMode.AES256_GCM_PBKDF2_SHA256_600K,
        max_cached_keys: int = KEY_CACHE_SIZE,
    ) -> None:
        if secret is None or not secret.strip():
            raise EncryptionError("Secret cannot be null or empty")
        if max_cached_keys < 0:
            raise EncryptionError("Key cache size cannot be negative")

        self._secret = secret
        self.default_mode = default_mode
        self._max_cached_keys = max_cached_keys
        self._key_cache: "OrderedDict[Tuple[str, int, bytes], bytes]" = OrderedDict()
        self._cache_lock = threading.Lock()

    @property
    def cache_size(self) -> int:
        with self._cache_lock:
            return len(self._key_cache)

    def encrypt(self, message: str, mode: Optional[EncryptionMode] = None) -> EncryptionResult:
        """Seal a message with a fresh salt and IV."""
        if message is None:
            raise EncryptionError("Message cannot be null")

        mode = mode or self.default_mode
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(GCM_IV_LENGTH)

        key = self._derive_key(salt, mode)
        try:
            ciphertext = AESGCM(key).encrypt(iv, message.encode("utf-8"), None)
        except Exception as e:
            raise EncryptionError("Failed to encrypt message", details={"error": str(e)}) from e

        return EncryptionResult(
            encrypted_payload=_b64encode(ciphertext),
            iv=_b64encode(iv),
            salt=_b64encode(salt),
            encryption_mode=mode,
        )

    def decrypt(self, result: EncryptionResult) -> str:
        """Open a sealed message."""
        return self.decrypt_components(
            result.encrypted_payload,
            result.iv,
            result.salt,
            int(result.encryption_mode),
        )

    def decrypt_components(self, encrypted_payload: str, iv: str, salt: str, encryption_mode: int) -> str:
        """Open a message from its base64 components and scheme tag."""
        if encrypted_payload is None or iv is None or salt is None:
            raise EncryptionError("Encrypted payload, IV, and salt cannot be null")

        try:
            mode = EncryptionMode.from_value(int(encryption_mode))
        except (TypeError, ValueError) as e:
            raise EncryptionError(f"Unsupported encryption mode: {encryption_mode}") from e

        ciphertext = _b64decode(encrypted_payload, "payload")
        iv_bytes = _b64decode(iv, "IV")
        salt_bytes = _b64decode(salt, "salt")

        if len(iv_bytes) != GCM_IV_LENGTH:
            raise EncryptionError(f"Invalid IV length: expected {GCM_IV_LENGTH} bytes")
        if len(salt_bytes) != SALT_LENGTH:
            raise EncryptionError(f"Invalid salt length: expected {SALT_LENGTH} bytes")

        key = self._derive_key(salt_bytes, mode)
        try:
            plaintext = AESGCM(key).decrypt(iv_bytes, ciphertext, None)
        except InvalidTag as e:
            raise EncryptionError("Failed to decrypt message: authentication tag mismatch") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncryptionError("Decrypted payload is not valid UTF-8") from e

    def encrypt_to_token(self, message: str) -> str:
        """Seal a message into one opaque string."""
        result = self.encrypt(message)
        combined = TOKEN_SEPARATOR.join(
            [result.encrypted_payload, result.iv, result.salt, str(int(result.encryption_mode))]
        )
        return _b64encode(combined.encode("utf-8"))

    def decrypt_token(self, token: str) -> str:
        """Open a string produced by ``encrypt_to_token``."""
        if not token or not token.strip():
            raise EncryptionError("Encrypted data cannot be null or empty")

        combined = _b64decode(token, "token").decode("utf-8", errors="replace")
        parts = combined.split(TOKEN_SEPARATOR)
        if len(parts) != 4:
            raise EncryptionError("Invalid encrypted data format")

        payload, iv, salt, mode = parts
        return self.decrypt_components(payload, iv, salt, mode)

    def clear_cache(self) -> None:
        """Drop every cached derived key."""
        with self._cache_lock:
            count = len(self._key_cache)
            self._key_cache.clear()
        logger.debug("Encryption key cache cleared", keys_dropped=count)

    def _derive_key(self, salt: bytes, mode: EncryptionMode) -> bytes:
        cache_key = (self._secret, int(mode), salt)
        with self._cache_lock:
            cached = self._key_cache.get(cache_key)
            if cached is not None:
                self._key_cache.move_to_end(cache_key)
        if cached is not None:
            return cached

        if mode is EncryptionMode.AES256_GCM_PBKDF2_SHA256_600K:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=KEY_LENGTH,
                salt=salt,
                iterations=PBKDF2_ITERATIONS,
            )
            key = kdf.derive(self._secret.encode("utf-8"))
        else:
            raise EncryptionError(
                f"{mode.label} key derivation not yet implemented",
                details={"encryption_mode": int(mode)},
            )

        with self._cache_lock:
            self._key_cache[cache_key] = key
            while len(self._key_cache) > self._max_cached_keys:
                self._key_cache.popitem(last=False)
        return key


def generate_key() -> bytes:
    """Return a random 256-bit key."""
    return os.urandom(KEY_LENGTH)


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(data: str, field: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncryptionError(f"Invalid base64 in {field}") from e
