"""
Shared route dependencies: the caller's ledger gateway and the session registry.

Tests override these with app.dependency_overrides to run against fakes.
"""

from typing import Annotated

from fastapi import Depends

from quickentry.auth.dependencies import AuthenticatedUser, get_authenticated_user
from quickentry.db.client import get_supabase_client
from quickentry.services.session import SessionRegistry, registry
from quickentry.services.transaction_service import LedgerGateway, SupabaseLedgerGateway


async def get_ledger_gateway(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> LedgerGateway:
    """Gateway bound to an RLS-scoped client for the authenticated user."""
    supabase_client = get_supabase_client(auth_user.access_token)
    return SupabaseLedgerGateway(supabase_client, auth_user.user_id)


def get_session_registry() -> SessionRegistry:
    return registry
