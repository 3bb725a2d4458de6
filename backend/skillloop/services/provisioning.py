"""Gemini access provisioning for new callers.

Callers that do not bring their own Gemini key are given a shared-key
identifier. It is not a credential: requests for these callers draw from
the shared key pool, and the identifier only records that the caller was
provisioned onto it.
"""

import logging
from typing import Optional

from skillloop.config import get_settings
from skillloop.llm.config import KeyKind
from skillloop.llm.key_resolver import (
    DEFAULT_POOLED_PREFIX,
    caller_id_from_identifier,
    pooled_key_identifier,
)
from skillloop.services.accounts import (
    AccountStore,
    InMemoryAccountStore,
    SupabaseAccountStore,
)
from skillloop.utils.errors import CallerNotFoundError

logger = logging.getLogger(__name__)


class KeyProvisioner:
    """Assigns shared Gemini access to callers without a key."""

    def __init__(
        self,
        store: AccountStore,
        secret: str,
        prefix: str = DEFAULT_POOLED_PREFIX,
    ):
        self.store = store
        self.secret = secret
        self.prefix = prefix

    def provision(self, caller_id: str) -> str:
        """Ensure a caller has Gemini access recorded on their account.

        A stored shared-key identifier that does not name this caller, such as
        one copied from another account, is replaced.

        Args:
            caller_id: Caller account id

        Returns:
            The caller's Gemini key or shared-key identifier now on record

        Raises:
            CallerNotFoundError: Unknown caller
        """
        account = self.store.get_account(caller_id)
        if account is None:
            raise CallerNotFoundError(caller_id)

        stored_key = account.secondary.api_key
        if stored_key and (
            account.secondary_key_kind is KeyKind.OWN
            or caller_id_from_identifier(stored_key, self.prefix) == caller_id
        ):
            return stored_key

        identifier = pooled_key_identifier(caller_id, self.secret, self.prefix)
        self.store.set_secondary_key(caller_id, identifier, KeyKind.POOLED)
        logger.info(f"[POOL] Provisioned shared Gemini access for user {caller_id}")
        return identifier


def create_provisioner_from_settings(store: Optional[AccountStore] = None) -> KeyProvisioner:
    """Create a KeyProvisioner from application settings.

    Args:
        store: Account store override; the app passes the orchestrator's store.
            Defaults to Supabase when configured, otherwise an empty in-memory store

    Returns:
        Configured KeyProvisioner instance
    """
    settings = get_settings()

    if store is None:
        if settings.has_supabase:
            store = SupabaseAccountStore(
                default_primary_model=settings.default_primary_model,
                default_secondary_model=settings.default_secondary_model,
                pooled_prefix=settings.pooled_key_prefix,
            )
        else:
            logger.warning("Supabase not configured, using in-memory account store")
            store = InMemoryAccountStore()

    return KeyProvisioner(
        store,
        secret=settings.gemini_provisioning_secret,
        prefix=settings.pooled_key_prefix,
    )
