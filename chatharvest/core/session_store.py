"""Encrypted at-rest storage of per-platform browser sessions.

A session is the Playwright ``storage_state`` (cookies plus per-origin local
storage) captured after a successful login. It is serialized as JSON,
encrypted with AES-256-CBC under a random IV and written as ``ivHex:cipherHex``
to ``<sessions_dir>/<platform>_session.enc``. Sessions older than seven days
are never trusted.
"""

import json
import logging
import os
import tempfile
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..platforms.base.errors import SessionCorruption
from ..platforms.base.models import SessionRecord
from ..utils import ensure_dirs_exist
from ..utils.outputs_paths import get_session_file

logger = logging.getLogger(__name__)

SESSION_KEY_ENV = "SESSION_KEY"
SESSION_MAX_AGE = timedelta(days=7)
IV_SIZE = 16
KEY_SIZE = 32

# Development-only fallback key material.
_FALLBACK_PASSPHRASE = b"default-secret-salt"
_FALLBACK_SALT = b"salt"


def derive_fallback_key() -> bytes:
    kdf = Scrypt(salt=_FALLBACK_SALT, length=KEY_SIZE, n=2**14, r=8, p=1)
    return kdf.derive(_FALLBACK_PASSPHRASE)


def resolve_session_key(raw_key: str | None = None) -> bytes:
    """Resolve the 32-byte session key.

    Uses ``raw_key`` (or the ``SESSION_KEY`` environment variable) when it is
    64 hex characters; otherwise falls back to a derived development key.
    """
    raw_key = raw_key if raw_key is not None else os.environ.get(SESSION_KEY_ENV, "")
    raw_key = raw_key.strip()
    if raw_key:
        try:
            key = bytes.fromhex(raw_key)
            if len(key) == KEY_SIZE:
                return key
            logger.warning(
                f"{SESSION_KEY_ENV} must be {KEY_SIZE * 2} hex characters, "
                f"got {len(raw_key)}; using fallback key"
            )
        except ValueError:
            logger.warning(f"{SESSION_KEY_ENV} is not valid hex; using fallback key")
    else:
        logger.warning(
            f"No {SESSION_KEY_ENV} provided, using derived fallback key. "
            "This is for non-production use only!"
        )
    return derive_fallback_key()


class SessionStore:
    """Save and load encrypted platform sessions."""

    def __init__(
        self,
        sessions_dir: Path,
        key: bytes | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        """Initialize the session store.

        Args:
        ----
            sessions_dir: Directory holding ``<platform>_session.enc`` files
            key: 32-byte AES key (resolved from the environment when omitted)
            now: Clock returning an aware UTC datetime

        """
        if key is not None and len(key) != KEY_SIZE:
            raise ValueError(f"Session key must be {KEY_SIZE} bytes")
        self.sessions_dir = sessions_dir
        self._key = key if key is not None else resolve_session_key()
        self._now = now or (lambda: datetime.now(timezone.utc))

    def path_for(self, platform_id: str) -> Path:
        return get_session_file(self.sessions_dir, platform_id)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, text: str) -> str:
        """Decrypt an ``ivHex:cipherHex`` string.

        Raises
        ------
            SessionCorruption: If the text is malformed or does not decrypt

        """
        try:
            iv_hex, cipher_hex = text.strip().split(":", 1)
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(cipher_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise SessionCorruption(f"Session payload could not be decrypted: {e}") from e

    def save(
        self, platform_id: str, storage_state: dict[str, Any], model: str = ""
    ) -> bool:
        """Encrypt and atomically write a platform's storage state.

        Returns
        -------
            True on success; failures are logged and reported as False

        """
        payload = {
            "timestamp": self._now().isoformat(),
            "cookies": storage_state.get("cookies", []),
            "origins": storage_state.get("origins", []),
            "model": model or platform_id,
        }
        path = self.path_for(platform_id)
        try:
            ensure_dirs_exist(path)
            encrypted = self.encrypt(json.dumps(payload, ensure_ascii=False))
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(encrypted)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except Exception as e:
            logger.error(f"Failed to save session for {platform_id}: {e}")
            return False

        logger.info(
            f"💾 Session saved for {platform_id} "
            f"({len(payload['cookies'])} cookies, {len(payload['origins'])} origins)"
        )
        return True

    def load(self, platform_id: str) -> SessionRecord | None:
        """Load a fresh session; None when absent, corrupt or expired."""
        path = self.path_for(platform_id)
        if not path.is_file():
            logger.debug(f"No stored session for {platform_id}")
            return None

        try:
            record = self._parse(platform_id, path.read_text(encoding="utf-8"))
        except SessionCorruption as e:
            logger.warning(f"Ignoring corrupt session for {platform_id}: {e}")
            return None
        except OSError as e:
            logger.warning(f"Could not read session for {platform_id}: {e}")
            return None

        age = record.age_days(self._now())
        if age >= SESSION_MAX_AGE.days:
            logger.info(f"Session for {platform_id} expired ({age:.1f} days old)")
            return None

        logger.info(f"🔑 Loaded session for {platform_id} ({age:.1f} days old)")
        return record

    def _parse(self, platform_id: str, text: str) -> SessionRecord:
        plaintext = self.decrypt(text)
        try:
            payload = json.loads(plaintext)
        except json.JSONDecodeError as e:
            raise SessionCorruption(f"Session payload is not JSON: {e}") from e
        if not isinstance(payload, dict) or not payload.get("timestamp"):
            raise SessionCorruption("Session payload has no timestamp")

        try:
            created_at = datetime.fromisoformat(
                str(payload["timestamp"]).replace("Z", "+00:00")
            )
        except ValueError as e:
            raise SessionCorruption(f"Invalid session timestamp: {e}") from e
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        cookies = payload.get("cookies") or []
        origins = payload.get("origins") or []
        for name, entries in (("cookies", cookies), ("origins", origins)):
            if not isinstance(entries, list) or not all(
                isinstance(entry, dict) for entry in entries
            ):
                raise SessionCorruption(f"Session {name} must be a list of objects")

        return SessionRecord(
            platform_id=platform_id,
            cookies=list(cookies),
            origins=list(origins),
            created_at=created_at,
        )

    def delete(self, platform_id: str) -> bool:
        """Remove a stored session. Returns whether a file was removed."""
        path = self.path_for(platform_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted stored session for {platform_id}")
        return True
