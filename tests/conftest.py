"""Shared fixtures for the comment mop test-suite."""

import pytest

from comment_mop.models.node import ModeratorUser
from tests.fakes import FakeAuthorizationSource, FakeClock, FakeContentProvider


@pytest.fixture
def provider() -> FakeContentProvider:
    return FakeContentProvider()


@pytest.fixture
def moderator() -> ModeratorUser:
    return ModeratorUser(id="mod1", username="mod_one")


@pytest.fixture
def auth_source(moderator) -> FakeAuthorizationSource:
    source = FakeAuthorizationSource(current_user=moderator)
    source.moderators = [moderator]
    source.permissions[moderator.id] = {"posts", "wiki"}
    return source


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
