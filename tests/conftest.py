import pytest

from services.content_repo import ContentRepoClient
from tests.helpers import FakeGitHub, make_repo_client


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def repo_client(github: FakeGitHub) -> ContentRepoClient:
    return make_repo_client(github)
