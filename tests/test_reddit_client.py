"""Tests for the authenticated Reddit session."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from asyncprawcore.exceptions import AsyncPrawcoreException

from comment_mop.config import Config
from comment_mop.models.node import ModeratorUser
from comment_mop.reddit_client import RedditClient


@pytest.fixture
def config():
    return Config(
        client_id="id",
        client_secret="secret",
        username="mop_bot",
        password="hunter2",
        subreddit="TestSub",
    )


@pytest.fixture
def reddit(mocker):
    reddit = MagicMock()
    reddit.close = AsyncMock()
    reddit.user.me = AsyncMock(return_value=SimpleNamespace(id="bot1", name="mop_bot"))
    subreddit = MagicMock()
    subreddit.moderator = AsyncMock(return_value=[SimpleNamespace(id="t2_bot1", name="mop_bot")])
    reddit.subreddit = AsyncMock(return_value=subreddit)
    mocker.patch("comment_mop.reddit_client.asyncpraw.Reddit", return_value=reddit)
    return reddit


@pytest.mark.asyncio
async def test_initialize_checks_moderator_status(config, reddit):
    client = RedditClient(config)

    account = await client.initialize()

    assert account == ModeratorUser("bot1", "mop_bot")
    assert client.account == account
    assert client.reddit is reddit
    subreddit = await client.get_subreddit("testsub")
    subreddit.moderator.assert_awaited_once_with(redditor="mop_bot")
    # Cached regardless of name case
    reddit.subreddit.assert_awaited_once_with("TestSub")


@pytest.mark.asyncio
async def test_initialize_twice_reuses_session(config, reddit):
    client = RedditClient(config)

    await client.initialize()
    await client.initialize()

    reddit.user.me.assert_awaited_once()


@pytest.mark.asyncio
async def test_account_that_does_not_moderate_is_rejected(config, reddit):
    reddit.subreddit.return_value.moderator.return_value = []
    client = RedditClient(config)

    with pytest.raises(ValueError, match="not a moderator of r/TestSub"):
        await client.initialize()

    reddit.close.assert_awaited_once()
    assert client.account is None
    with pytest.raises(ValueError):
        client.reddit


@pytest.mark.asyncio
async def test_login_failure_closes_session(config, reddit):
    reddit.user.me.side_effect = AsyncPrawcoreException("invalid_grant")
    client = RedditClient(config)

    with pytest.raises(ValueError, match="authentication failed"):
        await client.initialize()

    reddit.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_missing_credentials_named(mocker):
    factory = mocker.patch("comment_mop.reddit_client.asyncpraw.Reddit")
    client = RedditClient(Config(client_id="id", username="mop_bot", subreddit="testsub"))

    with pytest.raises(ValueError, match="REDDIT_CLIENT_SECRET, REDDIT_PASSWORD"):
        await client.initialize()

    factory.assert_not_called()
