"""Byte-to-text decoding with a legacy-encoding fallback.

Build tools on Chinese-locale Windows hosts print GBK while most others print
UTF-8. Each chunk is decoded as UTF-8 first; when that produces replacement
characters the same bytes are decoded with the fallback encoding instead.

Decoding is stateless per chunk. A multi-byte sequence split across two
chunks can therefore still decode with replacement characters.
"""

from __future__ import annotations

import codecs
import logging
from typing import Protocol

logger = logging.getLogger(__name__)

REPLACEMENT_CHAR = "\ufffd"


class Decoder(Protocol):
    """Anything that turns bytes into text without raising."""

    name: str

    def decode(self, data: bytes) -> str: ...


class CodecDecoder:
    """Decoder backed by a Python codec."""

    def __init__(self, encoding: str):
        self.name = codecs.lookup(encoding).name
        self._encoding = encoding

    @staticmethod
    def available(encoding: str) -> bool:
        """Check whether the codec is installed."""
        try:
            codecs.lookup(encoding)
        except LookupError:
            return False
        return True

    def decode(self, data: bytes) -> str:
        return data.decode(self._encoding, errors="replace")


class StreamDecoder:
    """UTF-8 first, legacy encoding second."""

    def __init__(
        self,
        primary: str | Decoder = "utf-8",
        fallback: str | Decoder | None = "gbk",
    ):
        self._primary = CodecDecoder(primary) if isinstance(primary, str) else primary
        self._fallback: Decoder | None = None

        if isinstance(fallback, str):
            if CodecDecoder.available(fallback):
                self._fallback = CodecDecoder(fallback)
            else:
                logger.warning(f"Fallback encoding {fallback!r} unavailable, using {self._primary.name} only")
        else:
            self._fallback = fallback

    @property
    def fallback(self) -> Decoder | None:
        """Selected fallback decoder, if any."""
        return self._fallback

    def decode(self, data: bytes) -> str:
        """Decode one chunk.

        Args:
            data: Raw bytes from a process pipe

        Returns:
            Decoded text; never raises
        """
        try:
            text = self._primary.decode(data)
        except Exception:
            logger.debug(f"{self._primary.name} decoder failed, using raw utf-8")
            return data.decode("utf-8", errors="replace")

        if REPLACEMENT_CHAR not in text or self._fallback is None:
            return text

        try:
            decoded = self._fallback.decode(data)
        except Exception:
            logger.debug(f"{self._fallback.name} fallback decoder failed")
            return text
        logger.debug(f"Decoded chunk with {self._fallback.name} fallback")
        return decoded
