"""Infrastructure components for Outreach.

This package contains infrastructure-level components like:
- Browser session driver
- Document store backends
- Credential encryption
- Retry backoff
- Worker wake-up dispatch
"""

from outreach_core.infrastructure.backoff import BackoffStrategy
from outreach_core.infrastructure.crypto import (
    CryptoService,
    DecryptionError,
    InvalidKeyError,
)

__all__ = [
    "BackoffStrategy",
    "CryptoService",
    "DecryptionError",
    "InvalidKeyError",
]
