import pytest

from paperchat.exceptions import ValidationError
from paperchat.models.chat import ASSISTANT_ROLE, BOT_ROLE, USER_ROLE, ChatMessage
from paperchat.models.paper import Paper


@pytest.fixture
def user(repo):
    return repo.create_user("Ada@Example.com", "Ada", "hash")


def test_create_user_normalizes_email_and_rejects_duplicates(repo, user):
    assert user.email == "ada@example.com"
    assert repo.find_user_by_email(" ADA@example.com ").id == user.id

    with pytest.raises(ValidationError, match="already exists"):
        repo.create_user("ada@example.com", "Other", "hash")


def test_sessions_resolve_and_expire(repo, user):
    token = repo.create_session(user.id)
    assert repo.find_user_by_token(token).id == user.id

    expired = repo.create_session(user.id, days=-1)
    assert repo.find_user_by_token(expired) is None

    repo.delete_session(token)
    assert repo.find_user_by_token(token) is None


def test_library_is_sorted_and_duplicate_insert_is_ignored(repo, user, paper, other_paper):
    assert repo.add_to_library(user.id, paper) is True
    assert repo.add_to_library(user.id, other_paper) is True
    assert repo.add_to_library(user.id, paper) is False

    titles = [p.title for p in repo.list_library(user.id)]
    assert titles == [paper.title, other_paper.title]

    repo.remove_from_library(user.id, paper.link)
    assert [p.link for p in repo.list_library(user.id)] == [other_paper.link]


def test_library_round_trips_paper_fields(repo, user, paper):
    repo.add_to_library(user.id, paper)

    stored = repo.list_library(user.id)[0]
    assert stored.title == paper.title
    assert stored.summary == paper.summary
    assert stored.authors == paper.authors


def test_library_is_scoped_per_user(repo, user, paper):
    other = repo.create_user("bob@example.com", "Bob", "hash")
    repo.add_to_library(user.id, paper)

    assert repo.list_library(other.id) == []


def test_recently_viewed_upserts_and_orders_newest_first(repo, user, paper, other_paper):
    repo.record_view(user.id, paper)
    repo.record_view(user.id, other_paper)
    repo.record_view(user.id, paper)

    assert [p.link for p in repo.list_recently_viewed(user.id)] == [paper.link, other_paper.link]


def test_add_history_drops_recently_viewed(repo, user, paper):
    repo.record_view(user.id, paper)

    assert repo.add_history(user.id, paper) is True
    assert repo.add_history(user.id, paper) is False
    assert repo.list_recently_viewed(user.id) == []
    assert [p.link for p in repo.list_history(user.id)] == [paper.link]
    assert repo.is_in_history(user.id, paper.link)


def test_messages_are_returned_in_order(repo, user, paper):
    repo.save_message(user.id, paper, ChatMessage(role=USER_ROLE, content="first"))
    saved = repo.save_message(user.id, paper, ChatMessage(role=BOT_ROLE, content="second"))

    assert saved.created_at
    messages = repo.list_messages(user.id, paper.link)
    assert [(m.role, m.content) for m in messages] == [(USER_ROLE, "first"), (BOT_ROLE, "second")]


def test_papers_with_messages_count_as_history(repo, user, paper):
    repo.save_message(user.id, paper, ChatMessage(role=USER_ROLE, content="hello"))

    assert [p.link for p in repo.list_history(user.id)] == [paper.link]


def test_remove_history_deletes_messages(repo, user, paper):
    repo.add_history(user.id, paper)
    repo.save_message(user.id, paper, ChatMessage(role=USER_ROLE, content="hello"))

    assert repo.remove_history(user.id, paper.link) == 2
    assert repo.list_history(user.id) == []
    assert repo.list_messages(user.id, paper.link) == []


def test_upsert_paper_refreshes_metadata(repo, paper):
    repo.upsert_paper(paper)
    repo.upsert_paper(Paper(title="Renamed", link=paper.link, summary="New", authors=["X"]))

    stored = repo.find_paper(paper.link)
    assert stored.title == "Renamed"
    assert stored.authors == ["X"]


def test_chat_threads(repo, user):
    long_title = "A" * 60
    chat = repo.create_chat(user.id, "1706.03762", long_title)

    assert chat.title == "Chat: " + "A" * 50 + "..."
    repo.add_chat_message(chat.id, USER_ROLE, "question")
    repo.add_chat_message(chat.id, ASSISTANT_ROLE, "answer")

    assert [m["content"] for m in repo.list_chat_messages(chat.id)] == ["question", "answer"]
    assert [c.id for c in repo.list_chats(user.id)] == [chat.id]


def test_chat_threads_are_owned(repo, user):
    other = repo.create_user("bob@example.com", "Bob", "hash")
    chat = repo.create_chat(user.id, "1706.03762", "Attention")

    assert repo.find_chat(other.id, chat.id) is None
    assert repo.delete_chat(other.id, chat.id) is False
    repo.add_chat_message(chat.id, USER_ROLE, "hi")

    assert repo.delete_chat(user.id, chat.id) is True
    assert repo.list_chat_messages(chat.id) == []
