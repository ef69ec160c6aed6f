"""Symmetric encryption of message content at rest.

Messages are stored as Fernet tokens. The storage layer encrypts on write
and decrypts on read; the chat hub only decrypts when it builds the
human-readable last-message snippet of a private-chat preview.
"""
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class MessageCipher:
    """Encrypts and decrypts message content with a single Fernet key."""

    def __init__(self, key: Optional[str] = None) -> None:
        if not key:
            logger.warning(
                "[Crypto] No encryption key configured; generated an ephemeral key. "
                "Stored messages will be unreadable after a restart."
            )
            key = Fernet.generate_key().decode("ascii")
        self._fernet = Fernet(key.encode("ascii") if isinstance(key, str) else key)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored token.

        Raises:
            cryptography.fernet.InvalidToken: If the token was not produced
                with this key or has been tampered with.
        """
        return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")

    def decrypt_preview(self, content: Optional[str]) -> str:
        """Decrypt content for a chat-list snippet.

        Empty content short-circuits without touching the key. A token that
        cannot be decrypted yields an empty snippet rather than breaking the
        whole chat list.
        """
        if not content:
            return ""
        try:
            return self.decrypt(content)
        except (InvalidToken, UnicodeError) as exc:
            logger.warning("[Crypto] Could not decrypt message preview: %r", exc)
            return ""
