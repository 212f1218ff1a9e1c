"""
API routes, one module per area of the apps.
"""

from __future__ import annotations

from fastapi import APIRouter

from gogo.routes import (
    admin,
    chats,
    deliveries,
    drivers,
    merchants,
    notifications,
    orders,
    promos,
    rides,
    uploads,
    users,
    wallet,
)
from gogo.schemas import StatusResponse

router = APIRouter()


@router.get("/health", response_model=StatusResponse)
def health():
    return StatusResponse(status="ok")


for module in (
    users,
    drivers,
    rides,
    orders,
    deliveries,
    merchants,
    wallet,
    promos,
    notifications,
    uploads,
    admin,
    chats,
):
    router.include_router(module.router)
