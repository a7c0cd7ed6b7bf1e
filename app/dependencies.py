"""
Kindred — Service wiring and FastAPI dependencies.

``build_core_services`` assembles one explicit graph of stores and services
for the configured backend.  The graph lives on ``app.state.core``; routes
reach it through the ``get_*`` dependencies below, never through module
globals, so tests can mount an app over their own in-memory graph.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.services.block_service import (
    BlockRegistry,
    InMemoryBlockStore,
    SqlAlchemyBlockStore,
)
from app.services.directory_service import (
    InMemoryUserDirectory,
    SqlAlchemyUserDirectory,
    UserDirectory,
)
from app.services.discovery_service import DiscoveryService
from app.services.match_store import InMemoryMatchStore, SqlAlchemyMatchStore
from app.services.matching_service import MatchRegistry
from app.services.presence_service import PresenceTracker
from app.services.signaling_service import (
    InMemorySignalingBus,
    SignalingBus,
    SignalingRelay,
)


@dataclass
class CoreServices:
    settings: Settings
    directory: UserDirectory
    matches: MatchRegistry
    blocks: BlockRegistry
    discovery: DiscoveryService
    presence: PresenceTracker
    relay: SignalingRelay
    bus: SignalingBus


def build_core_services(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    bus: Optional[SignalingBus] = None,
    directory: Optional[UserDirectory] = None,
) -> CoreServices:
    """Wire the core for ``settings.STORE_BACKEND``.

    In ``database`` mode the stores and the directory share
    ``session_factory`` (default: the application's engine).  ``directory``
    overrides the directory in either mode.
    """
    settings = settings or get_settings()

    if settings.uses_database:
        if session_factory is None:
            from app.database import async_session_factory

            session_factory = async_session_factory
        directory = directory or SqlAlchemyUserDirectory(session_factory)
        match_store = SqlAlchemyMatchStore(session_factory)
        block_store = SqlAlchemyBlockStore(session_factory)
    else:
        directory = directory or InMemoryUserDirectory()
        match_store = InMemoryMatchStore()
        block_store = InMemoryBlockStore()

    matches = MatchRegistry(
        match_store,
        directory=directory,
        directory_timeout=settings.DIRECTORY_TIMEOUT_SECONDS,
    )
    blocks = BlockRegistry(block_store)
    discovery = DiscoveryService(
        directory,
        matches,
        blocks,
        directory_timeout=settings.DIRECTORY_TIMEOUT_SECONDS,
        default_page_size=settings.DISCOVERY_DEFAULT_PAGE_SIZE,
        max_page_size=settings.DISCOVERY_MAX_PAGE_SIZE,
        recommended_limit=settings.RECOMMENDED_LIMIT,
    )

    presence = PresenceTracker()
    bus = bus or InMemorySignalingBus()
    relay = SignalingRelay(
        presence,
        bus,
        require_reachable=settings.CALL_REQUIRE_REACHABLE,
        ring_timeout=settings.CALL_RING_TIMEOUT_SECONDS,
        history_limit=settings.CALL_HISTORY_LIMIT,
    )

    return CoreServices(
        settings=settings,
        directory=directory,
        matches=matches,
        blocks=blocks,
        discovery=discovery,
        presence=presence,
        relay=relay,
        bus=bus,
    )


# ── FastAPI dependencies ──────────────────────────────────────────────────────

def get_core(request: Request) -> CoreServices:
    return request.app.state.core


def get_match_registry(core: CoreServices = Depends(get_core)) -> MatchRegistry:
    return core.matches


def get_discovery_service(core: CoreServices = Depends(get_core)) -> DiscoveryService:
    return core.discovery


def get_block_registry(core: CoreServices = Depends(get_core)) -> BlockRegistry:
    return core.blocks


def get_presence_tracker(core: CoreServices = Depends(get_core)) -> PresenceTracker:
    return core.presence


def get_signaling_relay(core: CoreServices = Depends(get_core)) -> SignalingRelay:
    return core.relay
