import pytest

from tests.fixtures.fakes import FakeChatAPI, FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chat_api():
    return FakeChatAPI()
