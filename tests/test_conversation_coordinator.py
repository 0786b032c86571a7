import asyncio

import pytest

from egypto.errors import ConversationAccessError, InvalidProviderError, StoreError, TitleSummarizationError
from egypto.services.conversation_coordinator import ConversationCoordinator
from egypto.utils.text import clean_title, placeholder_title


@pytest.fixture
def coordinator(store, registry):
    return ConversationCoordinator(store, registry, title_provider=None)


def test_placeholder_title_is_the_trimmed_prompt_prefix():
    prompt = "  " + "ا" * 80
    assert placeholder_title(prompt, 50) == "ا" * 50
    assert placeholder_title("Where are the pyramids?", 50) == "Where are the pyramids?"


@pytest.mark.parametrize("raw, expected", [
    ('"رحلة الأهرامات"', "رحلة الأهرامات"),
    ("«Giza trip»", "Giza trip"),
    ("  'Nile cruise'\n", "Nile cruise"),
    ("“Luxor”", "Luxor"),
    ('""', ""),
])
def test_clean_title_strips_wrapping_quotes(raw, expected):
    assert clean_title(raw) == expected


def test_new_conversation_gets_placeholder_title(coordinator, store):
    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "x" * 120, new_id="fixed-id")
        return cid, await store.get_conversation(cid)

    cid, conversation = asyncio.run(go())
    assert cid == "fixed-id"
    assert conversation.title == "x" * 50
    assert conversation.owner_id == "u1"


def test_existing_conversation_must_belong_to_caller(coordinator, store):
    async def go():
        cid = await coordinator.ensure_conversation("owner", None, "hi")
        assert await coordinator.ensure_conversation("owner", cid, "again") == cid
        with pytest.raises(ConversationAccessError):
            await coordinator.ensure_conversation("intruder", cid, "mine now")
        with pytest.raises(ConversationAccessError):
            await coordinator.ensure_conversation("owner", "does-not-exist", "hi")

    asyncio.run(go())


def test_record_turn_stores_and_bumps_activity(coordinator, store):
    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "hi")
        before = (await store.get_conversation(cid)).updated_at
        turn = await coordinator.record_turn(cid, "hi", "Ahlan")
        after = (await store.get_conversation(cid)).updated_at
        return turn, before, after

    turn, before, after = asyncio.run(go())
    assert (turn.prompt, turn.reply) == ("hi", "Ahlan")
    assert after >= before


def test_summarize_title_replaces_placeholder(coordinator, store, providers):
    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "Where are the pyramids?")
        title = await coordinator.summarize_title(cid, "deepseek", "Where are the pyramids?")
        return title, await store.get_conversation(cid)

    title, conversation = asyncio.run(go())
    assert title == "رحلة الأهرامات"
    assert conversation.title == "رحلة الأهرامات"
    [call] = providers[1].once_calls
    assert "Where are the pyramids?" in call[0].content
    assert "Egyptian Arabic" in call[0].content
    assert providers[0].once_calls == []


def test_configured_title_provider_wins(store, registry, providers):
    coordinator = ConversationCoordinator(store, registry, title_provider="gemini")

    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "hi")
        await coordinator.summarize_title(cid, "deepseek", "hi")

    asyncio.run(go())
    assert len(providers[0].once_calls) == 1
    assert providers[1].once_calls == []


def test_empty_title_is_rejected(coordinator, providers):
    providers[0].once_reply = '  ""  '

    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "hi")
        await coordinator.summarize_title(cid, "gemini", "hi")

    with pytest.raises(TitleSummarizationError):
        asyncio.run(go())


def test_unknown_title_provider_is_rejected(store, registry):
    coordinator = ConversationCoordinator(store, registry, title_provider="openai")

    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "hi")
        await coordinator.summarize_title(cid, "gemini", "hi")

    with pytest.raises(InvalidProviderError):
        asyncio.run(go())


def test_background_title_failure_keeps_placeholder(coordinator, store, providers):
    providers[0].once_error = True

    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "Where are the pyramids?")
        coordinator.maybe_summarize_title(cid, "gemini", "Where are the pyramids?")
        assert len(coordinator.background) == 1
        await asyncio.gather(*coordinator.background.pending())
        return await store.get_conversation(cid)

    conversation = asyncio.run(go())
    assert conversation.title == "Where are the pyramids?"
    assert len(coordinator.background) == 0


def test_background_title_does_not_block_and_can_be_cancelled(coordinator, providers):
    providers[0].once_hangs = True

    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "hi")
        coordinator.maybe_summarize_title(cid, "gemini", "hi")
        await asyncio.sleep(0.01)
        assert len(coordinator.background.pending()) == 1
        await coordinator.background.cancel_all()
        return coordinator.background.pending()

    assert asyncio.run(go()) == []


def test_discard_conversation_removes_it(coordinator, store):
    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "hi")
        await coordinator.discard_conversation(cid)
        return await store.get_conversation(cid)

    assert asyncio.run(go()) is None


def test_failed_activity_bump_keeps_the_stored_turn(coordinator, store, monkeypatch):
    async def broken_touch(conversation_id):
        raise StoreError("Failed to access chat storage.", details="database is locked")

    monkeypatch.setattr(store, "touch_conversation", broken_touch)

    async def go():
        cid = await coordinator.ensure_conversation("u1", None, "hi")
        turn = await coordinator.record_turn(cid, "hi", "Ahlan")
        return cid, turn, await store.list_recent_turns(cid)

    cid, turn, turns = asyncio.run(go())
    assert turn.conversation_id == cid
    assert [t.reply for t in turns] == ["Ahlan"]
