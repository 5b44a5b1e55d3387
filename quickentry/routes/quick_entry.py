"""
Quick-entry session API endpoints.

A thin client opens a session, streams keypad events to it and renders the
returned snapshot (display, effective amount, selection, inference status).
Committing saves the effective amount as a transaction, or queues it when
the backend is unreachable.

Flow for every endpoint:
- Auth: get_authenticated_user (via get_ledger_gateway)
- Session lookup: scoped to the authenticated user
- Map the core's sentinels / CommitResult to a response or HTTPException
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from quickentry.auth.dependencies import AuthenticatedUser, get_authenticated_user
from quickentry.routes.dependencies import get_ledger_gateway, get_session_registry
from quickentry.schemas.quick_entry import (
    CommitResponse,
    QuickEntryEventRequest,
    QuickEntrySessionDeleteResponse,
    QuickEntrySessionResponse,
    SelectionUpdateRequest,
)
from quickentry.services.commit_coordinator import SelectionField
from quickentry.services.session import QuickEntrySession, SessionRegistry
from quickentry.services.transaction_service import LedgerGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quick-entry", tags=["quick-entry"])

AuthUser = Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
Gateway = Annotated[LedgerGateway, Depends(get_ledger_gateway)]
Registry = Annotated[SessionRegistry, Depends(get_session_registry)]


def _get_session(
    registry: SessionRegistry,
    session_id: str,
    auth_user: AuthenticatedUser,
    gateway: LedgerGateway,
) -> QuickEntrySession:
    session = registry.get(session_id, auth_user.user_id)
    if session is None:
        logger.warning(f"Quick-entry session {session_id} not found for user_id={auth_user.user_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": f"Session {session_id} not found"}
        )
    session.rebind(gateway)
    return session


def _bad_request(details: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": "invalid_request", "details": details}
    )


@router.post(
    "/sessions",
    response_model=QuickEntrySessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a quick-entry session",
)
async def open_session(
    auth_user: AuthUser, gateway: Gateway, registry: Registry
) -> QuickEntrySessionResponse:
    """Create a session, load accounts / categories / payees and apply defaults."""
    session = await registry.create_session(auth_user.user_id, gateway)
    return session.snapshot()


@router.get(
    "/sessions/{session_id}",
    response_model=QuickEntrySessionResponse,
    summary="Get a quick-entry session snapshot",
)
async def get_session(
    session_id: str, auth_user: AuthUser, gateway: Gateway, registry: Registry
) -> QuickEntrySessionResponse:
    return _get_session(registry, session_id, auth_user, gateway).snapshot()


@router.delete(
    "/sessions/{session_id}",
    response_model=QuickEntrySessionDeleteResponse,
    summary="Close a quick-entry session",
)
async def close_session(
    session_id: str, auth_user: AuthUser, registry: Registry
) -> QuickEntrySessionDeleteResponse:
    if not await registry.close(session_id, auth_user.user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": f"Session {session_id} not found"}
        )
    return QuickEntrySessionDeleteResponse(
        session_id=session_id, message="Quick-entry session closed"
    )


@router.post(
    "/sessions/{session_id}/events",
    response_model=QuickEntrySessionResponse,
    summary="Send a keypad or keyboard event",
)
async def send_event(
    session_id: str,
    request: QuickEntryEventRequest,
    auth_user: AuthUser,
    gateway: Gateway,
    registry: Registry,
) -> QuickEntrySessionResponse:
    """
    Apply one calculator event.

    Rejected arithmetic (e.g. division by zero) is not an error: the
    snapshot simply shows the unchanged state.
    """
    session = _get_session(registry, session_id, auth_user, gateway)

    try:
        if request.type == "digit":
            session.enter_digit(request.value or "")
        elif request.type == "operator":
            session.enter_operator(request.value or "")
        elif request.type == "backspace":
            session.backspace()
        elif request.type == "equals":
            session.equals()
        elif request.type == "clear":
            session.clear()
        elif request.type == "value":
            session.set_value(float(request.value or ""))
        elif request.type == "key":
            session.handle_key(request.value or "")
    except ValueError as e:
        logger.warning(f"Rejected quick-entry event {request.type}: {e}")
        raise _bad_request(str(e))

    return session.snapshot()


@router.put(
    "/sessions/{session_id}/selection",
    response_model=QuickEntrySessionResponse,
    summary="Override the account / category / payee selection",
)
async def update_selection(
    session_id: str,
    request: SelectionUpdateRequest,
    auth_user: AuthUser,
    gateway: Gateway,
    registry: Registry,
) -> QuickEntrySessionResponse:
    session = _get_session(registry, session_id, auth_user, gateway)

    if request.account_id is not None:
        session.select(SelectionField.ACCOUNT, request.account_id)
    if request.category_id is not None:
        session.select(SelectionField.CATEGORY, request.category_id)
    if request.payee_id is not None:
        session.select(SelectionField.PAYEE, request.payee_id)

    return session.snapshot()


@router.post(
    "/sessions/{session_id}/commit",
    response_model=CommitResponse,
    summary="Save the current amount as a transaction",
)
async def commit(
    session_id: str, auth_user: AuthUser, gateway: Gateway, registry: Registry
) -> CommitResponse:
    """
    Commit the effective amount.

    - created / queued: 200 with the result and the reset session snapshot
    - invalid: 400 (no amount, no account); nothing was sent
    - error: 502 with the backend's error message; the user may retry
    """
    session = _get_session(registry, session_id, auth_user, gateway)
    result = await session.commit()

    if result.status == "invalid":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "validation_failed", "details": result.message}
        )
    if result.status == "error":
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "remote_call_failed", "details": result.message}
        )

    logger.info(
        f"Quick-entry commit {result.status} for user_id={auth_user.user_id}: "
        f"transaction_id={result.transaction_id}, queued_id={result.queued_id}"
    )
    return CommitResponse(result=result, session=session.snapshot())
