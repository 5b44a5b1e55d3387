"""
Supabase client factory with RLS enforcement.

The quick-entry service reads accounts, categories, payees and transaction
history, and inserts transactions, always on behalf of the calling user.

RULES:
1. NEVER use the service_role key for user operations
2. ALWAYS use the user's JWT token from Supabase Auth
3. The client MUST be created per request with the user's token
"""

import logging

from quickentry.config import settings
from supabase import Client, create_client

logger = logging.getLogger(__name__)


def get_supabase_client(access_token: str) -> Client:
    """
    Create an authenticated Supabase client for a specific user.

    Args:
        access_token: The user's JWT access token, as verified by
                     quickentry/auth/dependencies.py.

    Returns:
        A Supabase client whose queries are scoped by RLS to the token's user.

    Example:
        >>> client = get_supabase_client(auth_user.access_token)
        >>> client.table("account").select("id, name, is_default").execute()
    """
    client: Client = create_client(
        supabase_url=settings.SUPABASE_URL,
        supabase_key=settings.SUPABASE_PUBLISHABLE_KEY
    )

    # The token's 'sub' claim drives auth.uid() in RLS policies
    client.auth.set_session(access_token, access_token)

    logger.debug("Created authenticated Supabase client with user token (RLS enforced)")

    return client
