"""
Credential package.

Caches the WeCom access token used to authenticate outbound pushes.

Key points:
- One token per process, replaced only by a successful fetch.
- Tokens are treated as expired five minutes before the upstream says so.
- Refreshes are single-flight: concurrent callers share one fetch.
"""

from .cache import Credential, CredentialCache, DEFAULT_SAFETY_MARGIN

__all__ = ["Credential", "CredentialCache", "DEFAULT_SAFETY_MARGIN"]
