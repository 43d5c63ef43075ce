"""Tests for poll building and vote accounting."""

import pytest
from pathlib import Path

from core.document_store import DocumentStore
from core.error_handler import NotFoundError, ValidationError
from logic.poll_engine import PollEngine
from models.board import Poll, PollOption


@pytest.fixture
def store(tmp_path: Path):
    store = DocumentStore(tmp_path / "store.db")
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def engine(store):
    return PollEngine(store.connect())


@pytest.fixture
def poll():
    return Poll(question="Lunch?", options=[PollOption("o1", "Pizza"), PollOption("o2", "Sushi")])


class TestBuildPoll:
    """Tests for creating polls."""

    def test_build(self, engine):
        poll = engine.build_poll(" Lunch? ", ["Pizza", " Sushi ", ""], allow_multiple=True)

        assert poll.question == "Lunch?"
        assert [o.text for o in poll.options] == ["Pizza", "Sushi"]
        assert len({o.id for o in poll.options}) == 2
        assert poll.allow_multiple is True
        assert poll.total_votes == 0

    @pytest.mark.parametrize("options", [[], ["Only"], ["Only", "  ", ""]])
    def test_needs_two_options(self, engine, options):
        with pytest.raises(ValidationError):
            engine.build_poll("Lunch?", options)


class TestApplyVote:
    """Tests for the pure vote rule."""

    def test_first_vote(self, engine, poll):
        assert engine.apply_vote(poll, "o1", "guest:carol") is True

        assert poll.option("o1").voters == ["guest:carol"]
        assert poll.total_votes == 1

    def test_duplicate_vote_is_noop(self, engine, poll):
        engine.apply_vote(poll, "o1", "guest:carol")

        assert engine.apply_vote(poll, "o1", "guest:carol") is False

        assert poll.option("o1").voters == ["guest:carol"]
        assert poll.total_votes == 1

    def test_second_option_allowed_on_single_choice_poll(self, engine, poll):
        """Only same-option duplicates are refused, whatever allow_multiple says."""
        assert poll.allow_multiple is False
        engine.apply_vote(poll, "o1", "guest:carol")

        assert engine.apply_vote(poll, "o2", "guest:carol") is True

        assert poll.total_votes == 2

    def test_unknown_option(self, engine, poll):
        with pytest.raises(ValidationError):
            engine.apply_vote(poll, "o9", "guest:carol")

    def test_identity_required(self, engine, poll):
        with pytest.raises(ValidationError):
            engine.apply_vote(poll, "o1", "")


class TestVote:
    """Tests for transactional voting."""

    @pytest.mark.asyncio
    async def test_vote_is_stored(self, engine, store, poll):
        client = store.connect()
        await client.set("posts/p1", {"title": "Lunch", "poll": poll.to_dict()})

        result = await engine.vote("posts/p1", "o1", "u1")

        assert result.option("o1").voters == ["u1"]
        stored = Poll.from_dict((await client.get("posts/p1")).data["poll"])
        assert stored.total_votes == 1
        assert stored.option("o1").voters == ["u1"]

    @pytest.mark.asyncio
    async def test_repeat_vote_leaves_document_unchanged(self, engine, store, poll):
        client = store.connect()
        await client.set("posts/p1", {"poll": poll.to_dict()})
        await engine.vote("posts/p1", "o1", "u1")
        before = (await client.get("posts/p1")).data

        result = await engine.vote("posts/p1", "o1", "u1")

        assert result.total_votes == 1
        assert (await client.get("posts/p1")).data == before

    @pytest.mark.asyncio
    async def test_missing_post(self, engine):
        with pytest.raises(NotFoundError):
            await engine.vote("posts/ghost", "o1", "u1")

    @pytest.mark.asyncio
    async def test_post_without_poll(self, engine, store):
        await store.connect().set("posts/p1", {"title": "No poll"})

        with pytest.raises(ValidationError):
            await engine.vote("posts/p1", "o1", "u1")
