from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.db import get_db
from mindjournal.models import User
from mindjournal.schemas import EntryCreate, EntryOut, EntryUpdate
from mindjournal.services import journal
from mindjournal.services.auth_service import get_current_user
from mindjournal.services.bot import CreatedEntry, notify_new_entry

router = APIRouter(prefix="/api/entries", tags=["entries"])


@router.get("", response_model=List[EntryOut], response_model_exclude_unset=True)
async def list_entries(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    client_id: Optional[int] = Query(None, alias="clientId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Own entries, or a connected client's entries when clientId is given."""
    return await journal.list_entries(db, current_user, client_id, month)


@router.get("/{entry_id}", response_model=EntryOut, response_model_exclude_unset=True)
async def get_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await journal.get_entry(db, current_user, entry_id)


@router.post("", response_model=EntryOut, status_code=status.HTTP_201_CREATED, response_model_exclude_unset=True)
async def create_entry(
    req: EntryCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    state = request.app.state
    today = datetime.now(state.settings.tz).date()
    entry = await journal.create_entry(db, current_user, req.text, req.entry_date, today=today)

    # connected therapists in per_client mode hear about it after the response is sent
    background_tasks.add_task(
        notify_new_entry,
        state.sessionmaker,
        state.notifier,
        CreatedEntry(entry.id, current_user.id, current_user.name),
        state.settings.mini_app_url,
    )
    return await journal.get_entry(db, current_user, entry.id)


@router.put("/{entry_id}", response_model=EntryOut, response_model_exclude_unset=True)
async def update_entry(
    entry_id: int,
    req: EntryUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = req.model_dump(exclude_unset=True)
    return await journal.update_entry(db, current_user, entry_id, changes)


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await journal.delete_entry(db, current_user, entry_id)
    return {"success": True}
