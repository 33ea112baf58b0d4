"""Operator accounts and their persisted credential bundles.

A credential bundle is the cookie list captured after a fresh login. It
is stored in one file per account under ``cookies_dir``, encrypted with
``CryptoService`` when an encryption key is configured, and replaced
wholesale whenever a fresh login succeeds.

Usage:
    store = CredentialBundleStore(settings.cookies_dir, crypto)
    cookies = store.load(account.email)   # None if absent or unreadable
    store.save(account.email, cookies)
"""

import hashlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from outreach_core.config import Settings
from outreach_core.infrastructure.crypto import CryptoService, DecryptionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    """An operator account driving one browser identity."""

    email: str
    secret: str
    campaign_id: Optional[str] = None

    @property
    def bot_id(self) -> str:
        """Key of the account's profile and thread records."""
        return f"{self.email}_{self.secret}"

    def __repr__(self) -> str:
        return f"Account(email={self.email!r}, campaign_id={self.campaign_id!r})"

    @classmethod
    def from_settings(cls, settings: Settings) -> "Account":
        return cls(
            email=settings.account_email,
            secret=settings.account_secret,
            campaign_id=settings.campaign_id,
        )


class CredentialBundleStore:
    """File-backed store of one credential bundle per account."""

    def __init__(self, cookies_dir: str, crypto: Optional[CryptoService] = None):
        """Initialize the store.

        Args:
            cookies_dir: Directory holding the bundle files.
            crypto: Encrypts bundles at rest when given.
        """
        self.cookies_dir = Path(cookies_dir)
        self.crypto = crypto

    def path_for(self, email: str) -> Path:
        digest = hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()[:16]
        suffix = "enc" if self.crypto else "json"
        return self.cookies_dir / f"cookies_{digest}.{suffix}"

    def load(self, email: str) -> Optional[list[dict[str, Any]]]:
        """Read the account's bundle.

        Returns:
            The cookie list, or None when the file is absent or
            structurally invalid (both force a fresh login).
        """
        path = self.path_for(email)
        if not path.exists():
            logger.info(f"No credential bundle stored for {email}")
            return None

        try:
            body = path.read_text(encoding="utf-8")
            if self.crypto:
                body = self.crypto.decrypt(body)
            cookies = json.loads(body)
        except (OSError, DecryptionError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable credential bundle for {email}: {e}")
            return None

        if not isinstance(cookies, list) or not all(
            isinstance(c, dict) and "name" in c and "value" in c for c in cookies
        ):
            logger.warning(f"Malformed credential bundle for {email}")
            return None

        return cookies

    def save(self, email: str, cookies: list[dict[str, Any]]) -> Path:
        """Replace the account's bundle wholesale."""
        path = self.path_for(email)
        path.parent.mkdir(parents=True, exist_ok=True)

        body = json.dumps(cookies, indent=2)
        if self.crypto:
            body = self.crypto.encrypt(body)

        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)

        logger.info(f"Saved credential bundle for {email} ({len(cookies)} cookies)")
        return path
