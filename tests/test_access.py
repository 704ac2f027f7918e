import asyncio
from datetime import date

import pytest
from sqlalchemy import func, select

from mindjournal.errors import AccessDenied, NotFound, ValidationError
from mindjournal.models import DayRating, Relationship
from mindjournal.services import journal
from mindjournal.services.access import Action, decide

from conftest import add_user, memory_db

TODAY = date(2026, 3, 14)


def run(coro):
    return asyncio.run(coro)


async def setup_pair(db):
    client = await add_user(db, "1", "Client")
    therapist = await add_user(db, "2", "Therapist", role="therapist")
    db.add(Relationship(client_id=client.id, therapist_id=therapist.id))
    await db.commit()
    return client, therapist


def test_client_never_sees_therapist_fields():
    async def scenario():
        engine, Session = await memory_db()
        async with Session() as db:
            client, therapist = await setup_pair(db)
            entry = await journal.create_entry(db, client, "  slept badly  ", None, today=TODAY)
            assert entry.text == "slept badly"
            assert entry.entry_date == TODAY

            await journal.update_entry(
                db, therapist, entry.id, {"therapist_comments": "let's talk", "is_highlighted": True}
            )

            own = await journal.get_entry(db, client, entry.id)
            assert "therapist_comments" not in own
            assert own["is_highlighted"] is True

            seen = await journal.get_entry(db, therapist, entry.id)
            assert seen["therapist_comments"] == "let's talk"

            listed = await journal.list_entries(db, client)
            assert all("therapist_comments" not in e for e in listed)
        await engine.dispose()

    run(scenario())


def test_unrelated_therapist_is_denied():
    async def scenario():
        engine, Session = await memory_db()
        async with Session() as db:
            client, _ = await setup_pair(db)
            other = await add_user(db, "3", "Other", role="therapist")
            entry = await journal.create_entry(db, client, "hello", TODAY, today=TODAY)

            with pytest.raises(AccessDenied):
                await journal.get_entry(db, other, entry.id)
            with pytest.raises(AccessDenied):
                await journal.list_entries(db, other, owner_id=client.id)
            with pytest.raises(AccessDenied):
                await journal.update_entry(db, other, entry.id, {"therapist_comments": "hi"})
        await engine.dispose()

    run(scenario())


def test_connected_therapist_cannot_edit_client_fields_or_delete():
    async def scenario():
        engine, Session = await memory_db()
        async with Session() as db:
            client, therapist = await setup_pair(db)
            entry = await journal.create_entry(db, client, "original", TODAY, today=TODAY)

            with pytest.raises(AccessDenied):
                await journal.update_entry(db, therapist, entry.id, {"text": "rewritten"})
            with pytest.raises(AccessDenied):
                await journal.delete_entry(db, therapist, entry.id)

            assert (await journal.get_entry(db, client, entry.id))["text"] == "original"
        await engine.dispose()

    run(scenario())


def test_owner_cannot_write_therapist_fields_but_can_delete():
    async def scenario():
        engine, Session = await memory_db()
        async with Session() as db:
            client, _ = await setup_pair(db)
            entry = await journal.create_entry(db, client, "mine", TODAY, today=TODAY)

            with pytest.raises(AccessDenied):
                await journal.update_entry(db, client, entry.id, {"therapist_comments": "self-praise"})

            updated = await journal.update_entry(db, client, entry.id, {"text": "edited"})
            assert updated["text"] == "edited"

            await journal.delete_entry(db, client, entry.id)
            with pytest.raises(NotFound):
                await journal.get_entry(db, client, entry.id)
        await engine.dispose()

    run(scenario())


def test_blank_entry_text_is_rejected():
    async def scenario():
        engine, Session = await memory_db()
        async with Session() as db:
            client = await add_user(db, "1", "Client")
            with pytest.raises(ValidationError):
                await journal.create_entry(db, client, "   ", None, today=TODAY)
        await engine.dispose()

    run(scenario())


def test_decide_covers_every_combination():
    async def scenario():
        engine, Session = await memory_db()
        async with Session() as db:
            client, therapist = await setup_pair(db)
            stranger = await add_user(db, "3", "Stranger")
            for actor in (client, therapist, stranger):
                for action in Action:
                    decision = await decide(db, actor, client.id, action)
                    assert isinstance(decision.allowed, bool)

            assert (await decide(db, therapist, client.id, Action.READ)).as_therapist
            assert not (await decide(db, therapist, client.id, Action.DELETE)).allowed
            assert not (await decide(db, stranger, client.id, Action.READ)).allowed
            # a therapist reading their own journal is an owner, nothing hidden
            own = await decide(db, therapist, therapist.id, Action.READ)
            assert own.allowed and not own.redactions
        await engine.dispose()

    run(scenario())


def test_rating_range_and_upsert():
    async def scenario():
        engine, Session = await memory_db()
        async with Session() as db:
            client, therapist = await setup_pair(db)

            with pytest.raises(ValidationError):
                await journal.upsert_rating(db, client, TODAY, client_rating=6)

            await journal.upsert_rating(db, client, TODAY, client_rating=2)
            result = await journal.upsert_rating(db, client, TODAY, client_rating=3)
            assert result["client_rating"] == 3
            assert "therapist_rating" not in result

            count = await db.scalar(select(func.count(DayRating.id)).where(DayRating.user_id == client.id))
            assert count == 1

            rated = await journal.upsert_rating(
                db, therapist, TODAY, owner_id=client.id, therapist_rating=4
            )
            assert rated["client_rating"] == 3
            assert rated["therapist_rating"] == 4

            listed = await journal.list_ratings(db, client, month="2026-03")
            assert len(listed) == 1
            assert "therapist_rating" not in listed[0]
        await engine.dispose()

    run(scenario())


def test_rating_the_other_side_is_rejected():
    async def scenario():
        engine, Session = await memory_db()
        async with Session() as db:
            client, therapist = await setup_pair(db)

            with pytest.raises(AccessDenied):
                await journal.upsert_rating(db, client, TODAY, therapist_rating=5)
            with pytest.raises(AccessDenied):
                await journal.upsert_rating(
                    db, therapist, TODAY, owner_id=client.id, client_rating=1
                )
            assert await db.scalar(select(func.count(DayRating.id))) == 0
        await engine.dispose()

    run(scenario())


def test_month_filter_validation():
    with pytest.raises(ValidationError):
        journal.month_bounds("2026-13")
    assert journal.month_bounds("2026-12") == (date(2026, 12, 1), date(2027, 1, 1))
