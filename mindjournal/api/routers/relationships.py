from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.config import Settings
from mindjournal.db import get_db
from mindjournal.models import User
from mindjournal.schemas import (
    ClientInfo, InviteCreate, InviteCreated, InvitePreviewOut, RedemptionOut,
    TherapistInfo, UserPublic,
)
from mindjournal.services import pairing
from mindjournal.services.auth_service import get_current_user, get_settings

router = APIRouter(prefix="/api/relationships", tags=["relationships"])


@router.post("/invite", response_model=InviteCreated)
async def create_invite(
    req: InviteCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(get_current_user),
):
    """Issues a 48-hour single-use invite link."""
    issued = await pairing.issue_invite(
        db, current_user, req.invite_type, bot_username=settings.bot_username
    )
    return InviteCreated(token=issued.token, link=issued.link, expires_at=issued.expires_at)


@router.get("/invite/{token}", response_model=InvitePreviewOut)
async def preview_invite(
    token: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    preview = await pairing.preview_invite(db, token)
    return InvitePreviewOut(
        inviter=UserPublic.model_validate(preview.inviter),
        invite_type=preview.invite_type,
        expires_at=preview.expires_at,
    )


@router.post("/invite/{token}/accept", response_model=RedemptionOut)
async def accept_invite(
    token: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Redeems an invite from inside the mini app (same rules as the bot deep link)."""
    result = await pairing.redeem_invite(db, token, current_user)
    return RedemptionOut(
        status="already_connected" if result.already_connected else "connected",
        relationship_id=result.relationship.id,
        role=result.redeemer_role,
        inviter=UserPublic.model_validate(result.inviter),
    )


@router.get("/clients", response_model=List[ClientInfo])
async def list_clients(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = await pairing.list_clients_of(db, current_user)
    return [
        ClientInfo(
            id=client.id,
            name=client.name,
            telegram_id=client.telegram_id,
            connected_at=rel.connected_at,
            relationship_id=rel.id,
        )
        for client, rel in rows
    ]


@router.get("/therapist", response_model=Optional[TherapistInfo])
async def get_therapist(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    found = await pairing.get_therapist_of(db, current_user)
    if found is None:
        return None
    therapist, rel = found
    return TherapistInfo(
        id=therapist.id, name=therapist.name, connected_at=rel.connected_at, relationship_id=rel.id
    )


@router.delete("/{relationship_id}")
async def delete_relationship(
    relationship_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await pairing.disconnect(db, relationship_id, current_user)
    return {"success": True}
