"""Gemini credential resolution.

A caller either owns a dedicated Gemini key, which is used verbatim, or
draws from the shared key pool. Older accounts stored a per-caller shared
identifier (``gemini_user_<id>_<hash>``) instead of a real key; those are
recognised once, at load time, by ``infer_key_kind`` and tagged as pooled.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from .config import KeyKind
from .key_pool import KeyPool

logger = logging.getLogger(__name__)

DEFAULT_POOLED_PREFIX = "gemini_user_"


def pooled_key_identifier(
    caller_id: str,
    secret: str,
    prefix: str = DEFAULT_POOLED_PREFIX,
) -> str:
    """Build the shared-key identifier stored for callers without their own key."""
    digest = hmac.new(
        secret.encode("utf-8"), caller_id.encode("utf-8"), hashlib.sha256
    ).hexdigest()[:16]
    return f"{prefix}{caller_id}_{digest}"


def is_pooled_identifier(key: Optional[str], prefix: str = DEFAULT_POOLED_PREFIX) -> bool:
    """Check whether a stored key is a shared-key identifier rather than a credential."""
    return bool(key) and key.startswith(prefix)


def caller_id_from_identifier(
    key: str, prefix: str = DEFAULT_POOLED_PREFIX
) -> Optional[str]:
    """Recover the caller id embedded in a shared-key identifier."""
    if not is_pooled_identifier(key, prefix):
        return None
    body = key[len(prefix):]
    caller_id, sep, _ = body.rpartition("_")
    return caller_id if sep and caller_id else None


def infer_key_kind(stored_key: Optional[str], prefix: str = DEFAULT_POOLED_PREFIX) -> KeyKind:
    """Classify a legacy stored key that has no explicit kind."""
    if stored_key and not is_pooled_identifier(stored_key, prefix):
        return KeyKind.OWN
    return KeyKind.POOLED


@dataclass(frozen=True)
class ResolvedKey:
    """Credential chosen for a Gemini call and where it came from."""

    credential: Optional[str]
    kind: KeyKind

    @property
    def pooled(self) -> bool:
        return self.kind is KeyKind.POOLED


class KeyResolver:
    """Decides which Gemini credential a caller's request presents."""

    def __init__(self, pool: KeyPool):
        self.pool = pool

    def resolve(
        self,
        stored_key: Optional[str],
        kind: KeyKind,
        caller_id: str,
    ) -> ResolvedKey:
        """Resolve the credential for a caller.

        Args:
            stored_key: Gemini key stored on the caller account, if any
            kind: Whether the stored key is the caller's own credential
            caller_id: Caller identifier, used for pool assignment

        Returns:
            ResolvedKey whose credential is None when neither the caller nor
            the pool can supply one
        """
        if kind is KeyKind.OWN and stored_key:
            return ResolvedKey(credential=stored_key, kind=KeyKind.OWN)

        return ResolvedKey(
            credential=self.pool.get_key_for_caller(caller_id),
            kind=KeyKind.POOLED,
        )
