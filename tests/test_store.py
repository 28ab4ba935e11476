import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from meditranslate.database import SQLAlchemyStore
from meditranslate.database import store as store_module
from meditranslate.errors import NotFound, PersistenceFailed
from meditranslate.schemas import NewMessage
from meditranslate.services import SearchService


@pytest.fixture
def db(tmp_path):
    return SQLAlchemyStore(f"sqlite:///{tmp_path / 'conversations.db'}")


@pytest.fixture
def clock(monkeypatch):
    """Deterministic commit timestamps, advanced explicitly by tests."""
    state = {"now": datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)}

    def tick(seconds=1):
        state["now"] += timedelta(seconds=seconds)

    monkeypatch.setattr(store_module, "utc_now", lambda: state["now"])
    return tick


def _send(db, conversation_id, role, text, translated=None):
    return asyncio.run(
        db.insert_message(
            NewMessage(
                conversation_id=conversation_id,
                sender_role=role,
                original_text=text,
                translated_text=translated,
            )
        )
    )


def test_create_and_get_conversation(db):
    created = asyncio.run(db.create_conversation("en", "es"))

    fetched = asyncio.run(db.get_conversation(created.id))

    assert fetched == created
    assert fetched.created_at.tzinfo is not None
    assert asyncio.run(db.get_conversation("missing")) is None


def test_messages_come_back_in_commit_order(db, clock):
    conversation = asyncio.run(db.create_conversation("en", "es"))
    first = _send(db, conversation.id, "doctor", "first")
    clock()
    second = _send(db, conversation.id, "patient", "second")

    messages = asyncio.run(db.list_messages(conversation.id))

    assert [m.id for m in messages] == [first.id, second.id]
    assert messages[0].created_at < messages[1].created_at


def test_equal_timestamps_fall_back_to_insertion_order(db, clock):
    conversation = asyncio.run(db.create_conversation("en", "es"))
    ids = [_send(db, conversation.id, "doctor", f"msg {n}").id for n in range(5)]

    messages = asyncio.run(db.list_messages(conversation.id))

    assert [m.id for m in messages] == ids


def test_insert_refreshes_conversation_updated_at(db, clock):
    conversation = asyncio.run(db.create_conversation("en", "es"))
    clock(30)
    message = _send(db, conversation.id, "doctor", "Hello")

    refreshed = asyncio.run(db.get_conversation(conversation.id))

    assert refreshed.updated_at == message.created_at
    assert refreshed.updated_at > conversation.updated_at


def test_insert_into_unknown_conversation_is_not_found(db):
    with pytest.raises(NotFound):
        _send(db, "missing", "doctor", "Hello")


def test_sender_role_is_constrained(db):
    conversation = asyncio.run(db.create_conversation("en", "es"))

    with pytest.raises(PersistenceFailed):
        _send(db, conversation.id, "nurse", "Hello")
    assert asyncio.run(db.list_messages(conversation.id)) == []


def test_list_conversations_counts_messages_newest_first(db, clock):
    older = asyncio.run(db.create_conversation("en", "es"))
    clock()
    newer = asyncio.run(db.create_conversation("en", "fr"))
    _send(db, older.id, "doctor", "Hello")
    _send(db, older.id, "patient", "Hola")

    listing = asyncio.run(db.list_conversations())

    assert [(item.id, item.message_count) for item in listing] == [(newer.id, 0), (older.id, 2)]


def test_delete_cascades_to_messages(db):
    conversation = asyncio.run(db.create_conversation("en", "es"))
    _send(db, conversation.id, "doctor", "Hello")

    assert asyncio.run(db.delete_conversation(conversation.id)) is True
    assert asyncio.run(db.list_messages(conversation.id)) == []
    assert asyncio.run(db.get_conversation(conversation.id)) is None
    assert asyncio.run(db.delete_conversation(conversation.id)) is False


def test_search_matches_either_column_case_insensitively(db, clock):
    conversation = asyncio.run(db.create_conversation("en", "es"))
    doctor = _send(db, conversation.id, "doctor", "Any Fever today?", "¿Tiene fiebre hoy?")
    clock()
    patient = _send(db, conversation.id, "patient", "No, solo tos", "No, just a cough")
    clock()
    _send(db, conversation.id, "doctor", "Take this twice a day", "Tome esto dos veces al día")

    assert [m.id for m in asyncio.run(db.search_messages("fever", 50))] == [doctor.id]
    assert [m.id for m in asyncio.run(db.search_messages("COUGH", 50))] == [patient.id]
    assert [m.id for m in asyncio.run(db.search_messages("no", 50))] == [patient.id]


def test_search_folds_case_outside_ascii(db, clock):
    conversation = asyncio.run(db.create_conversation("ru", "es"))
    spanish = _send(db, conversation.id, "patient", "NÁUSEAS desde ayer", "Тошнота со вчерашнего дня")
    clock()
    russian = _send(db, conversation.id, "doctor", "Головная боль есть?", "¿Tiene DOLOR de cabeza?")

    assert [m.id for m in asyncio.run(db.search_messages("náuseas", 50))] == [spanish.id]
    assert [m.id for m in asyncio.run(db.search_messages("головная", 50))] == [russian.id]
    assert [m.id for m in asyncio.run(db.search_messages("ТОШНОТА", 50))] == [spanish.id]


def test_search_service_over_sqlite_finds_accented_text(db):
    conversation = asyncio.run(db.create_conversation("en", "es"))
    message = _send(db, conversation.id, "patient", "NÁUSEAS desde ayer", "Nausea since yesterday")

    results = asyncio.run(SearchService(db).search("náuseas"))

    assert [r.id for r in results] == [message.id]
    assert results[0].context == "NÁUSEAS desde ayer"


def test_search_is_newest_first_and_limited(db, clock):
    conversation = asyncio.run(db.create_conversation("en", "es"))
    ids = []
    for n in range(4):
        ids.append(_send(db, conversation.id, "doctor", f"rash check {n}").id)
        clock()

    results = asyncio.run(db.search_messages("rash", 3))

    assert [m.id for m in results] == list(reversed(ids))[:3]


def test_search_treats_wildcards_literally(db):
    conversation = asyncio.run(db.create_conversation("en", "es"))
    _send(db, conversation.id, "doctor", "Dose is 50% of the usual")
    _send(db, conversation.id, "doctor", "Nothing special")

    assert len(asyncio.run(db.search_messages("%", 50))) == 1
    assert asyncio.run(db.search_messages("_", 50)) == []
