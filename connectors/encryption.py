"""
Secret encryption — encrypt / decrypt OAuth tokens and client secrets at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The encryption key is loaded from ``config.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``).

If no key is configured, encryption is **disabled** and values are stored
as plaintext (with a startup warning).  Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import config

logger = logging.getLogger(__name__)

_fernet: Optional[Fernet] = None
_initialised = False


def _init_fernet() -> None:
    """Lazy-initialise the Fernet cipher once."""
    global _fernet, _initialised

    _initialised = True
    key = config.token_encryption_key
    if not key:
        logger.warning(
            "TOKEN_ENCRYPTION_KEY not set — OAuth tokens and client secrets "
            "will be stored as plaintext."
        )
        _fernet = None
        return

    # Raises ValueError on a malformed key.
    _fernet = Fernet(key.encode() if isinstance(key, str) else key)
    logger.info("Secret encryption enabled (Fernet/AES-128-CBC)")


def reset_cipher() -> None:
    """Forget the cached cipher so the next call re-reads the config."""
    global _fernet, _initialised
    _fernet = None
    _initialised = False


def encrypt_secret(plaintext: Optional[str]) -> Optional[str]:
    """
    Encrypt a secret for database storage.

    Returns the Fernet ciphertext (URL-safe base64), or the plaintext
    unchanged when encryption is disabled.  ``None`` passes through.
    """
    if plaintext is None:
        return None
    if not _initialised:
        _init_fernet()
    if _fernet is None:
        return plaintext
    return _fernet.encrypt(plaintext.encode()).decode()


def decrypt_secret(ciphertext: Optional[str]) -> Optional[str]:
    """
    Decrypt a secret read from the database.

    Values stored before encryption was enabled are not valid Fernet
    tokens and are returned as-is.
    """
    if ciphertext is None:
        return None
    if not _initialised:
        _init_fernet()
    if _fernet is None:
        return ciphertext
    try:
        return _fernet.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        return ciphertext


def is_encryption_enabled() -> bool:
    """Check whether secret encryption is active."""
    if not _initialised:
        _init_fernet()
    return _fernet is not None
