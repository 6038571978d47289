import fakeredis
import pytest

from leaderboard.leaderboard import Leaderboard


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    client = fakeredis.FakeRedis(server=redis_server)
    yield client
    client.flushall()


@pytest.fixture
def board(redis_client):
    return Leaderboard("name", redis_client=redis_client)


@pytest.fixture
def rank_members():
    def _rank_members(leaderboard, count=5):
        for index in range(1, count + 1):
            leaderboard.set_score("member_%d" % index, index,
                    "Leaderboard member %d" % index)
    return _rank_members
