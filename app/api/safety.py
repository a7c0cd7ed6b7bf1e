"""
Kindred — Safety API (blocking).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from app.dependencies import get_block_registry
from app.schemas.safety import BlockedUser
from app.services.block_service import BlockRegistry

router = APIRouter()


@router.post(
    "/{blocker_id}/block/{blocked_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Block a user; both are hidden from each other's discovery",
)
async def block_user(
    blocker_id: str,
    blocked_id: str,
    blocks: BlockRegistry = Depends(get_block_registry),
) -> Response:
    await blocks.block(blocker_id, blocked_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{blocker_id}/block/{blocked_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Lift a block",
)
async def unblock_user(
    blocker_id: str,
    blocked_id: str,
    blocks: BlockRegistry = Depends(get_block_registry),
) -> Response:
    await blocks.unblock(blocker_id, blocked_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{user_id}/blocked",
    response_model=list[BlockedUser],
    summary="Users this user has blocked, most recent first",
)
async def list_blocked_users(
    user_id: str,
    blocks: BlockRegistry = Depends(get_block_registry),
) -> list[BlockedUser]:
    return await blocks.list_blocked(user_id)
