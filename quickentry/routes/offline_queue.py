"""
Offline queue API endpoints.

Backs the client's offline indicator: connectivity plus the number of
writes waiting for replay, a manual sync trigger and a clear action.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from quickentry.auth.dependencies import AuthenticatedUser, get_authenticated_user
from quickentry.routes.dependencies import get_ledger_gateway, get_session_registry
from quickentry.schemas.offline_queue import (
    ConnectivityUpdateRequest,
    NetworkStatus,
    OfflineQueueClearResponse,
    OfflineQueueResponse,
    SyncReport,
)
from quickentry.services.session import SessionRegistry
from quickentry.services.transaction_service import LedgerGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/offline-queue", tags=["offline-queue"])

AuthUser = Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
Gateway = Annotated[LedgerGateway, Depends(get_ledger_gateway)]
Registry = Annotated[SessionRegistry, Depends(get_session_registry)]


@router.get("", response_model=OfflineQueueResponse, summary="Offline queue status")
async def get_offline_queue(
    auth_user: AuthUser, gateway: Gateway, registry: Registry
) -> OfflineQueueResponse:
    monitor = registry.monitor_for(auth_user.user_id, gateway)
    entries = await monitor.queue.list_all()
    await monitor.refresh_queue_size()
    return OfflineQueueResponse(status=monitor.status, entries=entries)


@router.post("/sync", response_model=SyncReport, summary="Replay queued mutations now")
async def sync_offline_queue(
    auth_user: AuthUser, gateway: Gateway, registry: Registry
) -> SyncReport:
    monitor = registry.monitor_for(auth_user.user_id, gateway)
    report = await monitor.sync_queue()
    logger.info(
        f"Manual sync for user_id={auth_user.user_id}: replayed={len(report.replayed)}, "
        f"retried={len(report.retried)}, evicted={len(report.evicted)}"
    )
    return report


@router.post(
    "/connectivity",
    response_model=NetworkStatus,
    summary="Report a connectivity transition",
)
async def report_connectivity(
    request: ConnectivityUpdateRequest,
    auth_user: AuthUser,
    gateway: Gateway,
    registry: Registry,
) -> NetworkStatus:
    """Going back online starts a background drain."""
    monitor = registry.monitor_for(auth_user.user_id, gateway)
    await monitor.set_online(request.is_online)
    return monitor.status


@router.delete("", response_model=OfflineQueueClearResponse, summary="Clear the offline queue")
async def clear_offline_queue(
    auth_user: AuthUser, gateway: Gateway, registry: Registry
) -> OfflineQueueClearResponse:
    monitor = registry.monitor_for(auth_user.user_id, gateway)
    await monitor.clear_queue()
    logger.info(f"Offline queue cleared for user_id={auth_user.user_id}")
    return OfflineQueueClearResponse(status=monitor.status, message="Offline queue cleared")
