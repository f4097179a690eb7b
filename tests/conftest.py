import pytest

from fakes import FakeSender


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()
