import asyncio

import pytest

from conftest import FakeStore
from paperchat.client.context import (
    CHAT_ERROR_MESSAGE,
    DEFAULT_BROWSE_QUERY,
    SUMMARY_ERROR_MESSAGE,
    SUMMARY_PROMPT,
    AppContext,
)
from paperchat.exceptions import ValidationError
from paperchat.models.chat import BOT_ROLE, PLACEHOLDER_CONTENT, USER_ROLE, ChatMessage


def _links(papers):
    return [p.link for p in papers]


# ── load ──────────────────────────────────────────────────────────────


def test_load_installs_all_lists(paper, other_paper):
    store = FakeStore(library=[paper], history=[other_paper], recent=[paper])
    ctx = AppContext(store)
    assert ctx.is_loading is True

    asyncio.run(ctx.load())

    assert _links(ctx.saved_papers) == [paper.link]
    assert _links(ctx.chat_history_papers) == [other_paper.link]
    assert _links(ctx.recently_viewed_papers) == [paper.link]
    assert ctx.is_loading is False


def test_load_keeps_successful_slices_when_one_fails(paper, other_paper):
    store = FakeStore(library=[paper], history=[other_paper], recent=[other_paper])
    store.fail.add("fetch_history")
    ctx = AppContext(store)

    asyncio.run(ctx.load())

    assert _links(ctx.saved_papers) == [paper.link]
    assert ctx.chat_history_papers == []
    assert _links(ctx.recently_viewed_papers) == [other_paper.link]
    assert ctx.is_loading is False


def test_load_unauthenticated_makes_no_calls(store):
    ctx = AppContext(store, authenticated=False)

    asyncio.run(ctx.load())

    assert store.calls == []
    assert ctx.saved_papers == []
    assert ctx.is_loading is False


def test_load_drops_duplicate_links(paper):
    store = FakeStore(library=[paper, paper])
    ctx = AppContext(store)

    asyncio.run(ctx.load())

    assert _links(ctx.saved_papers) == [paper.link]


# ── current paper / recently viewed ──────────────────────────────────


def test_set_current_paper_moves_to_front(store, paper, other_paper):
    ctx = AppContext(store)
    ctx.recently_viewed_papers = [other_paper, paper]

    asyncio.run(ctx.set_current_paper(paper))

    assert ctx.current_paper is paper
    assert _links(ctx.recently_viewed_papers) == [paper.link, other_paper.link]
    assert store.called("record_view") == [paper]


def test_set_current_paper_skips_history_papers(store, paper):
    ctx = AppContext(store)
    ctx.chat_history_papers = [paper]

    asyncio.run(ctx.set_current_paper(paper))

    assert ctx.current_paper is paper
    assert ctx.recently_viewed_papers == []
    assert store.called("record_view") == []


def test_set_current_paper_none(store):
    ctx = AppContext(store)

    asyncio.run(ctx.set_current_paper(None))

    assert ctx.current_paper is None
    assert store.calls == []


def test_set_current_paper_keeps_local_state_on_failure(store, paper):
    store.fail.add("record_view")
    ctx = AppContext(store)

    asyncio.run(ctx.set_current_paper(paper))

    assert _links(ctx.recently_viewed_papers) == [paper.link]


def test_remove_from_recently_viewed(store, paper, other_paper):
    ctx = AppContext(store)
    ctx.recently_viewed_papers = [paper, other_paper]

    asyncio.run(ctx.remove_paper_from_recently_viewed(paper.link))

    assert _links(ctx.recently_viewed_papers) == [other_paper.link]
    assert store.called("remove_recently_viewed") == [paper.link]


# ── library ───────────────────────────────────────────────────────────


def test_add_to_library(store, paper):
    ctx = AppContext(store)

    added = asyncio.run(ctx.add_paper_to_library(paper))

    assert added is True
    assert ctx.is_paper_in_library(paper.link)
    assert ctx.is_saving is False


def test_add_to_library_already_saved(store, paper):
    ctx = AppContext(store)
    ctx.saved_papers = [paper]

    added = asyncio.run(ctx.add_paper_to_library(paper))

    assert added is False
    assert store.called("save_to_library") == []
    assert len(ctx.saved_papers) == 1


def test_add_to_library_failure_leaves_library_unchanged(store, paper):
    store.fail.add("save_to_library")
    ctx = AppContext(store)

    added = asyncio.run(ctx.add_paper_to_library(paper))

    assert added is False
    assert ctx.saved_papers == []
    assert ctx.is_saving is False


def test_add_to_library_single_flight(store, paper, other_paper):
    ctx = AppContext(store)

    async def scenario():
        gate = asyncio.Event()
        store.gates["save_to_library"] = gate
        first = asyncio.create_task(ctx.add_paper_to_library(paper))
        await asyncio.sleep(0)
        assert ctx.is_saving is True
        second = await ctx.add_paper_to_library(other_paper)
        gate.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert _links(ctx.saved_papers) == [paper.link]
    assert store.called("save_to_library") == [paper]


def test_remove_from_library_has_no_rollback(store, paper):
    store.fail.add("remove_from_library")
    ctx = AppContext(store)
    ctx.saved_papers = [paper]

    asyncio.run(ctx.remove_paper_from_library(paper.link))

    assert ctx.saved_papers == []
    assert store.called("remove_from_library") == [paper.link]


# ── chat ──────────────────────────────────────────────────────────────


def test_first_user_message_moves_paper_to_history(store, paper, other_paper):
    ctx = AppContext(store)
    ctx.recently_viewed_papers = [paper, other_paper]
    ctx.chat_history_papers = [other_paper]

    message = ChatMessage(role=USER_ROLE, content="What is the main contribution?")
    asyncio.run(ctx.add_message_to_chat(paper, message))

    assert ctx.get_chat_for_paper(paper.link) == [message]
    assert _links(ctx.chat_history_papers) == [paper.link, other_paper.link]
    assert _links(ctx.recently_viewed_papers) == [other_paper.link]
    assert store.called("save_message") == [message]
    assert store.called("add_history") == [paper]
    assert store.called("remove_recently_viewed") == [paper.link]


def test_later_messages_do_not_touch_history(store, paper):
    ctx = AppContext(store)
    ctx.chat_history[paper.link] = [ChatMessage(role=USER_ROLE, content="hi")]

    asyncio.run(ctx.add_message_to_chat(paper, ChatMessage(role=USER_ROLE, content="again")))

    assert ctx.chat_history_papers == []
    assert store.called("add_history") == []


def test_placeholder_is_never_persisted(store, paper):
    ctx = AppContext(store)

    asyncio.run(ctx.add_message_to_chat(paper, ChatMessage.placeholder()))

    assert ctx.get_chat_for_paper(paper.link)[-1].content == PLACEHOLDER_CONTENT
    assert store.called("save_message") == []


def test_persist_false_skips_save(store, paper):
    ctx = AppContext(store)

    asyncio.run(
        ctx.add_message_to_chat(paper, ChatMessage(role=USER_ROLE, content="hi"), persist=False)
    )

    assert store.called("save_message") == []
    assert store.called("add_history") == [paper]


def test_replace_last_keeps_length(store, paper):
    ctx = AppContext(store)
    ctx.chat_history[paper.link] = [
        ChatMessage(role=USER_ROLE, content="q"),
        ChatMessage.placeholder(),
    ]

    ctx.replace_last_chat_message(paper.link, ChatMessage(role=BOT_ROLE, content="answer"))

    chat = ctx.get_chat_for_paper(paper.link)
    assert len(chat) == 2
    assert chat[-1].content == "answer"


def test_replace_last_on_empty_chat_is_noop(store, paper):
    ctx = AppContext(store)

    ctx.replace_last_chat_message(paper.link, ChatMessage(role=BOT_ROLE, content="x"))
    ctx.chat_history[paper.link] = []
    ctx.replace_last_chat_message(paper.link, ChatMessage(role=BOT_ROLE, content="x"))

    assert ctx.get_chat_for_paper(paper.link) == []


def test_remove_from_history_drops_chat(store, paper):
    ctx = AppContext(store)
    ctx.chat_history_papers = [paper]
    ctx.chat_history[paper.link] = [ChatMessage(role=USER_ROLE, content="q")]

    asyncio.run(ctx.remove_paper_from_history(paper.link))

    assert ctx.chat_history_papers == []
    assert paper.link not in ctx.chat_history
    assert store.called("remove_history") == [paper.link]


def test_load_chat_skips_fetch_when_cached(store, paper):
    ctx = AppContext(store)
    ctx.chat_history[paper.link] = [ChatMessage(role=USER_ROLE, content="q")]

    asyncio.run(ctx.load_chat_for_paper(paper))

    assert store.called("fetch_messages") == []


def test_load_chat_installs_messages_and_history(paper):
    stored = [
        ChatMessage(role=USER_ROLE, content="q", created_at="2024-01-01T00:00:00+00:00"),
        ChatMessage(role=BOT_ROLE, content="a", created_at="2024-01-01T00:00:01+00:00"),
    ]
    store = FakeStore(messages={paper.link: stored})
    ctx = AppContext(store)
    ctx.recently_viewed_papers = [paper]

    asyncio.run(ctx.load_chat_for_paper(paper))

    assert [m.content for m in ctx.get_chat_for_paper(paper.link)] == ["q", "a"]
    assert _links(ctx.chat_history_papers) == [paper.link]
    assert ctx.recently_viewed_papers == []


def test_load_chat_failure_leaves_state(store, paper):
    store.fail.add("fetch_messages")
    ctx = AppContext(store)

    asyncio.run(ctx.load_chat_for_paper(paper))

    assert ctx.get_chat_for_paper(paper.link) == []
    assert ctx.chat_history_papers == []


def test_send_message_replaces_placeholder_with_reply(paper):
    store = FakeStore(reply="The Transformer.")
    ctx = AppContext(store)

    reply = asyncio.run(ctx.send_message(paper, "  What is proposed?  "))

    chat = ctx.get_chat_for_paper(paper.link)
    assert [(m.role, m.content) for m in chat] == [
        (USER_ROLE, "What is proposed?"),
        (BOT_ROLE, "The Transformer."),
    ]
    assert reply.content == "The Transformer."
    assert store.called("send_chat") == ["What is proposed?"]
    assert store.called("save_message") == []


def test_send_message_failure_shows_error_message(store, paper):
    store.fail.add("send_chat")
    ctx = AppContext(store)

    reply = asyncio.run(ctx.send_message(paper, "hello"))

    chat = ctx.get_chat_for_paper(paper.link)
    assert len(chat) == 2
    assert reply.content == CHAT_ERROR_MESSAGE
    assert chat[-1].content == CHAT_ERROR_MESSAGE


def test_send_message_does_not_wait_for_history(store, paper):
    ctx = AppContext(store)

    async def scenario():
        history_gate, chat_gate = asyncio.Event(), asyncio.Event()
        store.gates["add_history"] = history_gate
        store.gates["send_chat"] = chat_gate
        task = asyncio.create_task(ctx.send_message(paper, "What is the method?"))
        for _ in range(5):
            await asyncio.sleep(0)
        pending = [m.content for m in ctx.get_chat_for_paper(paper.link)]
        asked = store.called("send_chat")
        chat_gate.set()
        history_gate.set()
        await task
        return pending, asked

    pending, asked = asyncio.run(scenario())

    assert pending == ["What is the method?", PLACEHOLDER_CONTENT]
    assert asked == ["What is the method?"]
    assert store.called("add_history") == [paper]
    assert store.called("remove_recently_viewed") == [paper.link]
    assert ctx.get_chat_for_paper(paper.link)[-1].content == store.reply


def test_send_message_rejects_blank_text(store, paper):
    ctx = AppContext(store)

    with pytest.raises(ValidationError):
        asyncio.run(ctx.send_message(paper, "   "))
    assert store.calls == []


def test_request_summary(store, paper):
    ctx = AppContext(store)

    asyncio.run(ctx.request_summary(paper))
    again = asyncio.run(ctx.request_summary(paper))

    assert again is None
    assert store.called("send_chat") == [SUMMARY_PROMPT]


def test_request_summary_failure(store, paper):
    store.fail.add("send_chat")
    ctx = AppContext(store)

    reply = asyncio.run(ctx.request_summary(paper))

    assert reply.content == SUMMARY_ERROR_MESSAGE


# ── browse / notifications ────────────────────────────────────────────


def test_search_sets_browse_state(paper):
    store = FakeStore(search_results=[paper])
    ctx = AppContext(store)
    assert ctx.browse_query == DEFAULT_BROWSE_QUERY

    results = asyncio.run(ctx.search("transformers"))

    assert _links(results) == [paper.link]
    assert ctx.browse_query == "transformers"
    assert ctx.browse_searched is True
    assert _links(ctx.browse_papers) == [paper.link]


def test_search_failure_keeps_previous_results(paper):
    store = FakeStore()
    store.fail.add("search")
    ctx = AppContext(store)
    ctx.browse_papers = [paper]

    results = asyncio.run(ctx.search("transformers"))

    assert _links(results) == [paper.link]
    assert _links(ctx.browse_papers) == [paper.link]


def test_subscribe_and_unsubscribe(store, paper):
    ctx = AppContext(store)
    seen = []
    unsubscribe = ctx.subscribe(lambda: seen.append(len(ctx.saved_papers)))

    asyncio.run(ctx.add_paper_to_library(paper))
    count = len(seen)
    unsubscribe()
    asyncio.run(ctx.remove_paper_from_library(paper.link))

    assert count > 0
    assert seen[-1] == 1
    assert len(seen) == count


def test_reset_clears_state(store, paper):
    ctx = AppContext(store)
    ctx.saved_papers = [paper]
    ctx.chat_history[paper.link] = [ChatMessage(role=USER_ROLE, content="q")]
    ctx.is_loading = False

    ctx.reset()

    assert ctx.saved_papers == []
    assert ctx.chat_history == {}
    assert ctx.is_loading is True
    assert ctx.browse_query == DEFAULT_BROWSE_QUERY


def test_view_order_has_no_duplicates(store, paper, other_paper):
    ctx = AppContext(store)

    async def scenario():
        await ctx.set_current_paper(paper)
        assert _links(ctx.recently_viewed_papers) == [paper.link]
        await ctx.set_current_paper(other_paper)
        assert _links(ctx.recently_viewed_papers) == [other_paper.link, paper.link]
        await ctx.set_current_paper(paper)

    asyncio.run(scenario())

    assert _links(ctx.recently_viewed_papers) == [paper.link, other_paper.link]


def test_removal_is_visible_before_store_resolves(store, paper):
    ctx = AppContext(store)
    ctx.saved_papers = [paper]

    async def scenario():
        gate = asyncio.Event()
        store.gates["remove_from_library"] = gate
        task = asyncio.create_task(ctx.remove_paper_from_library(paper.link))
        await asyncio.sleep(0)
        visible = ctx.is_paper_in_library(paper.link)
        gate.set()
        await task
        return visible

    assert asyncio.run(scenario()) is False
