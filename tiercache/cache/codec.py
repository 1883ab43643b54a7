"""
Entry Codec
Converts caller values to stored payloads and back

Encode order: serialize (JSON) -> compress (zlib) -> encrypt (Fernet)
Decode order: decrypt -> decompress -> deserialize

Compression is lossless zlib and is only kept when it actually shrinks the
payload. Encryption is authenticated (Fernet), applied only to values the
sensitivity classifier flags under tiers that require it.
"""

import json
import zlib
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

from cryptography.fernet import Fernet
from loguru import logger


SENSITIVE_PATTERNS = ("password", "token", "key", "secret", "private")

SensitivityClassifier = Callable[[Any], bool]


class KeywordSensitivityClassifier:
    """
    Flags a value as sensitive when its serialized form contains any
    of the configured substrings (case-insensitive).

    False positives are accepted: a dict with a "key" field is
    classified sensitive regardless of its content.
    """

    def __init__(self, patterns: Iterable[str] = SENSITIVE_PATTERNS):
        self.patterns = tuple(p.lower() for p in patterns)

    def __call__(self, value: Any) -> bool:
        try:
            text = json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            text = str(value)
        text = text.lower()
        return any(pattern in text for pattern in self.patterns)


@dataclass
class EncodedPayload:
    """Result of encoding a value, with the transforms that were applied."""
    data: bytes
    compressed: bool
    encrypted: bool
    original_size: int  # UTF-8 bytes of the serialized form

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class EntryCodec:
    """
    Serialize / compress / encrypt cache values.

    ``serialize`` raises on values JSON cannot represent; the cache
    manager treats that as a failed write. Every other step either
    succeeds or degrades without raising, except decrypt/decompress of
    a corrupted payload, which the manager converts into a miss.
    """

    def __init__(
        self,
        compression_threshold: int = 1000,
        compression_level: int = 6,
        encryption_key: Union[str, bytes, None] = None,
        classifier: Optional[SensitivityClassifier] = None,
    ):
        self.compression_threshold = compression_threshold
        self.compression_level = compression_level
        self.classifier = classifier or KeywordSensitivityClassifier()

        if not encryption_key:
            encryption_key = Fernet.generate_key()
            logger.debug("No cache encryption key configured, generated one for this process")
        self._fernet = Fernet(encryption_key)

    @classmethod
    def from_settings(cls, settings: Any) -> "EntryCodec":
        """Create codec from ``CacheSettings``."""
        return cls(
            compression_threshold=settings.compression_threshold,
            compression_level=settings.compression_level,
            encryption_key=settings.encryption_key or None,
            classifier=KeywordSensitivityClassifier(settings.sensitive_patterns),
        )

    # ------------------------------------------------------------------
    # Individual transforms
    # ------------------------------------------------------------------

    def serialize(self, value: Any) -> str:
        return json.dumps(value, ensure_ascii=False)

    def deserialize(self, text: str) -> Any:
        """Parse JSON; malformed input comes back as the raw string."""
        try:
            return json.loads(text)
        except (TypeError, ValueError):
            return text

    def compress(self, data: bytes) -> Optional[bytes]:
        """Compress data, or None when compression does not shrink it."""
        compressed = zlib.compress(data, level=self.compression_level)
        if len(compressed) < len(data):
            return compressed
        return None

    def decompress(self, data: bytes) -> bytes:
        return zlib.decompress(data)

    def encrypt(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def decrypt(self, data: bytes) -> bytes:
        return self._fernet.decrypt(data)

    def is_sensitive(self, value: Any) -> bool:
        try:
            return bool(self.classifier(value))
        except Exception as e:
            logger.warning(f"Sensitivity classifier failed, treating value as sensitive: {e}")
            return True

    @staticmethod
    def size_of(data: Union[str, bytes]) -> int:
        """UTF-8 byte length."""
        if isinstance(data, str):
            return len(data.encode("utf-8"))
        return len(data)

    # ------------------------------------------------------------------
    # Full pipeline
    # ------------------------------------------------------------------

    def encode(
        self,
        value: Any,
        compress: bool = False,
        encrypt_sensitive: bool = False,
    ) -> EncodedPayload:
        """
        Encode a value for storage.

        Args:
            value: JSON-serializable value
            compress: Tier allows compression (applied at or above threshold)
            encrypt_sensitive: Tier encrypts values classified sensitive

        Returns:
            EncodedPayload with flags needed to reverse the transforms
        """
        serialized = self.serialize(value)
        data = serialized.encode("utf-8")
        original_size = len(data)

        compressed = False
        if compress and len(serialized) >= self.compression_threshold:
            shrunk = self.compress(data)
            if shrunk is not None:
                data = shrunk
                compressed = True

        encrypted = False
        if encrypt_sensitive and self.is_sensitive(value):
            data = self.encrypt(data)
            encrypted = True

        return EncodedPayload(
            data=data,
            compressed=compressed,
            encrypted=encrypted,
            original_size=original_size,
        )

    def decode(self, data: bytes, compressed: bool, encrypted: bool) -> Any:
        """Reverse ``encode`` using the flags stored with the entry."""
        if encrypted:
            data = self.decrypt(data)
        if compressed:
            data = self.decompress(data)
        return self.deserialize(data.decode("utf-8"))

    def recompress(self, data: bytes, encrypted: bool) -> Optional[bytes]:
        """
        Compress an already stored, uncompressed payload.

        Encrypted payloads are decrypted, compressed and re-encrypted so
        decode order stays decrypt -> decompress. Returns None when the
        result would not be smaller than ``data``.
        """
        plain = self.decrypt(data) if encrypted else data
        shrunk = self.compress(plain)
        if shrunk is None:
            return None

        result = self.encrypt(shrunk) if encrypted else shrunk
        if len(result) >= len(data):
            return None
        return result
