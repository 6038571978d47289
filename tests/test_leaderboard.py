"""Tests for the Leaderboard facade: paging, windows, mutations and lifecycle."""

import time

from leaderboard.leaderboard import Aggregate, Leaderboard
from leaderboard.policy import Order
from leaderboard.results import RankedEntry
from leaderboard.windows import DEFAULT_PAGE_SIZE


class TestConfiguration:
    def test_defaults(self, board):
        """A new leaderboard uses the default page size and order."""
        assert board.key == "name"
        assert board.page_size == DEFAULT_PAGE_SIZE
        assert board.order is Order.HIGH_TO_LOW
        assert board.ties_key == "name:ties"
        assert board.member_data_key == "name:member_data"

    def test_invalid_page_size_falls_back(self, redis_client, rank_members):
        """Non-positive page sizes use the default."""
        board = Leaderboard("name", redis_client=redis_client, page_size=0)
        assert board.page_size == DEFAULT_PAGE_SIZE

        rank_members(board, DEFAULT_PAGE_SIZE)
        board.page_size = 0
        assert board.total_pages() == 1
        assert len(board.get_page(1)) == DEFAULT_PAGE_SIZE

    def test_page_size_setter(self, board, rank_members):
        """Changing the page size changes the page length."""
        rank_members(board, DEFAULT_PAGE_SIZE)
        board.page_size = 5

        assert board.total_pages() == 5
        assert len(board.get_page(1)) == 5


class TestCounts:
    def test_total_members(self, board):
        """Each ranked member counts once."""
        board.set_score("member", 1)
        board.set_score("member", 2)
        assert board.total_members() == 1

    def test_total_members_in_score_range(self, board, rank_members):
        """Score range counts are inclusive."""
        rank_members(board, 5)
        assert board.total_members_in_score_range(2, 4) == 3

    def test_total_pages(self, board, rank_members):
        """Total pages round up and honor a page size argument."""
        rank_members(board, DEFAULT_PAGE_SIZE + 1)

        assert board.total_pages() == 2
        assert board.total_pages(5) == 6

    def test_empty_board(self, board):
        """Empty leaderboards return empty pages."""
        assert board.total_pages() == 0
        assert board.get_page(1) == []
        assert board.get_all() == []
        assert board.get_top(5) == []


class TestPages:
    def test_leaders(self, board, rank_members):
        """First page is the best 25 members."""
        rank_members(board, 25)

        leaders = board.get_page(1)
        assert len(leaders) == 25
        assert leaders[0]["member"] == "member_25"
        assert leaders[-2]["member"] == "member_2"
        assert leaders[-1]["member"] == "member_1"
        assert leaders[-1]["score"] == 1.0

    def test_multiple_pages(self, board, rank_members):
        """Pages clamp into range instead of failing."""
        rank_members(board, DEFAULT_PAGE_SIZE * 3 + 1)

        assert len(board.get_page(1)) == DEFAULT_PAGE_SIZE
        assert len(board.get_page(2)) == DEFAULT_PAGE_SIZE
        assert len(board.get_page(3)) == DEFAULT_PAGE_SIZE
        assert len(board.get_page(4)) == 1
        assert len(board.get_page(-5)) == DEFAULT_PAGE_SIZE
        assert len(board.get_page(10)) == 1

    def test_page_size_option(self, board, rank_members):
        """page_size can be set per call."""
        rank_members(board, 25)

        assert len(board.get_page(1, page_size=5)) == 5
        assert len(board.get_page(2, page_size=10)) == 10
        assert len(board.get_page(3, page_size=10)) == 5

    def test_page_ranks_continue_across_pages(self, board, rank_members):
        """Second page ranks start after the first page."""
        rank_members(board, 30)

        assert [e["rank"] for e in board.get_page(2, page_size=10)] == list(range(11, 21))

    def test_get_all(self, board, rank_members):
        """All leaders come back in order."""
        rank_members(board, 30)

        leaders = board.get_all()
        assert len(leaders) == 30
        assert leaders[0]["member"] == "member_30"

    def test_page_for(self, board, rank_members):
        """Page lookups use the member's native position."""
        assert board.page_for("jones") == 0

        rank_members(board, 20)
        assert board.page_for("member_17") == 1
        assert board.page_for("member_1") == 1
        assert board.page_for("member_11", 10) == 1
        assert board.page_for("member_10", 10) == 2


class TestAroundMe:
    def test_around_me(self, board, rank_members):
        """Around-me windows are centered and truncated at the ends."""
        rank_members(board, DEFAULT_PAGE_SIZE * 3 + 1)

        assert len(board.get_around("member_30")) // 2 == DEFAULT_PAGE_SIZE // 2
        assert len(board.get_around("member_1")) == DEFAULT_PAGE_SIZE // 2 + 1
        assert len(board.get_around("member_76")) // 2 == DEFAULT_PAGE_SIZE // 2

    def test_around_me_page_size(self, board, rank_members):
        """The member sits in the middle of a small window."""
        rank_members(board, DEFAULT_PAGE_SIZE * 3 + 1)

        around = board.get_around("member_30", page_size=3)
        assert [e["member"] for e in around] == ["member_31", "member_30", "member_29"]

    def test_around_missing_member(self, board, rank_members):
        """Unknown members get an empty window."""
        rank_members(board, 10)
        assert board.get_around("jones", page_size=3) == []


class TestRanges:
    def test_score_range(self, board, rank_members):
        """Score ranges are ranked and ordered best first."""
        rank_members(board, 25)

        leaders = board.get_score_range(10, 15, with_member_data=True)
        assert leaders[0] == {"member": "member_15", "rank": 11, "score": 15.0,
                              "member_data": "Leaderboard member 15"}
        assert leaders[5] == {"member": "member_10", "rank": 16, "score": 10.0,
                              "member_data": "Leaderboard member 10"}

    def test_score_range_members_only(self, board, rank_members):
        """Score ranges honor the shaping flags."""
        rank_members(board, 25)

        leaders = board.get_score_range(10, 15, with_scores=False, with_rank=False)
        assert leaders[0] == {"member": "member_15"}

    def test_empty_score_range(self, board, rank_members):
        """No members in range gives an empty list."""
        rank_members(board, 5)
        assert board.get_score_range(100, 200) == []

    def test_rank_range(self, board, rank_members):
        """Rank ranges are 1-based and inclusive."""
        rank_members(board, 25)

        leaders = board.get_rank_range(1, 5)
        assert [e["member"] for e in leaders] == ["member_25", "member_24", "member_23",
                                                  "member_22", "member_21"]
        assert len(board.get_rank_range(20, 100)) == 6

    def test_top(self, board, rank_members):
        """Top N is ranks 1..N."""
        rank_members(board, 25)

        assert [e["rank"] for e in board.get_top(3)] == [1, 2, 3]

    def test_member_at(self, board, rank_members):
        """Positions outside the board return None."""
        rank_members(board, 25)

        assert board.get_member_at(1)["member"] == "member_25"
        assert board.get_member_at(25)["member"] == "member_1"
        assert board.get_member_at(26) is None
        assert board.get_member_at(0) is None

    def test_standings(self, board, rank_members):
        """Standings are (member, rank, score) for everyone."""
        rank_members(board, 3)

        assert board.get_standings() == [("member_3", 1, 3.0), ("member_2", 2, 2.0),
                                         ("member_1", 3, 1.0)]


class TestMemberQueries:
    def test_score_and_rank(self, board, rank_members):
        """Single member lookups return a RankedEntry."""
        rank_members(board, 5)

        assert board.get_score_and_rank("member_1") == RankedEntry("member_1", 1.0, 5)
        assert board.get_score_and_rank("jones") == RankedEntry("jones", None, None)

    def test_score(self, board, rank_members):
        """Scores round-trip exactly."""
        board.set_score("member_1", 1234.5678)
        assert board.get_score("member_1") == 1234.5678
        assert board.get_score("jones") is None

    def test_has_member(self, board):
        """Membership reflects ranked members only."""
        board.set_score("member_1", 10)

        assert board.has_member("member_1")
        assert not board.has_member("member_2")


class TestMutations:
    def test_set_scores(self, board):
        """Bulk scoring accepts a mapping or pairs."""
        assert board.set_scores({"member_1": 1, "member_10": 10}) == 2
        assert board.set_scores([("member_5", 5)]) == 1
        assert board.set_scores({}) == 0

        assert board.total_members() == 3
        assert board.get_page(1)[0]["member"] == "member_10"

    def test_set_score_if(self, board):
        """Conditional scoring only writes when the condition holds."""
        def higher_score_wins(member, current_score, score, member_data, order):
            return current_score is None or score > current_score

        assert board.set_score_if(higher_score_wins, "member_1", 10)
        assert not board.set_score_if(higher_score_wins, "member_1", 5)
        assert board.set_score_if(higher_score_wins, "member_1", 15)
        assert board.get_score("member_1") == 15.0

    def test_change_score(self, board):
        """Deltas apply to existing and new members."""
        board.set_score("member_1", 5)

        assert board.change_score("member_1", 5) == 10.0
        assert board.change_score("member_1", -5) == 5.0
        assert board.change_score("jones", 5) == 5.0

    def test_remove_member(self, board, rank_members):
        """Removed members lose rank and data."""
        rank_members(board, 5)

        assert board.remove_member("member_1") == 1
        assert board.total_members() == 4
        assert board.get_rank("member_1") is None
        assert board.get_member_data("member_1") is None
        assert board.remove_member("member_1") == 0

    def test_remove_members_in_score_range(self, board, rank_members):
        """Bulk score removal returns how many went."""
        rank_members(board, 5)
        board.set_scores({"cheater_1": 100, "cheater_2": 101, "cheater_3": 102})

        assert board.remove_members_in_score_range(100, 102) == 3
        assert board.total_members() == 5
        assert all(e["score"] < 100 for e in board.get_page(1))

    def test_remove_members_outside_rank(self, board, rank_members):
        """Only the best members are kept."""
        rank_members(board, 5)

        assert board.remove_members_outside_rank(3) == 2
        assert [e["member"] for e in board.get_page(1)] == ["member_5", "member_4", "member_3"]

    def test_remove_members_outside_rank_reverse(self, redis_client, rank_members):
        """Low-to-high boards keep the lowest scores."""
        board = Leaderboard("name", redis_client=redis_client, order=Order.LOW_TO_HIGH)
        rank_members(board, 5)

        assert board.remove_members_outside_rank(3) == 2
        assert [e["member"] for e in board.get_page(1)] == ["member_1", "member_2", "member_3"]


class TestMemberData:
    def test_member_data(self, board):
        """Member data is stored, replaced and removed."""
        board.set_score("member_id", 1, "original")
        assert board.get_member_data("member_id") == "original"
        assert board.get_member_data("unknown_member") is None

        board.set_member_data("member_id", "updated")
        assert board.get_member_data("member_id") == "updated"

        board.remove_member_data("member_id")
        assert board.get_member_data("member_id") is None

    def test_members_data(self, board, rank_members):
        """Member data for several members in one call."""
        rank_members(board, 3)

        assert board.get_members_data(["member_1", "jones", "member_3"]) == [
            "Leaderboard member 1", None, "Leaderboard member 3"]


class TestLifecycle:
    def test_delete(self, redis_client, board, rank_members):
        """Deleting removes the scores and member data."""
        rank_members(board, 5)
        assert redis_client.exists("name")

        board.delete()
        assert not redis_client.exists("name")
        assert not redis_client.exists("name:member_data")

    def test_expire(self, redis_client, board, rank_members):
        """Expiry applies to the scores and member data."""
        rank_members(board, 5)

        assert board.expire(10)
        assert 0 < redis_client.ttl("name") <= 10
        assert 0 < redis_client.ttl("name:member_data") <= 10

    def test_expire_at(self, redis_client, board, rank_members):
        """Expiry can be set to an absolute timestamp."""
        rank_members(board, 5)

        assert board.expire_at(int(time.time()) + 10)
        assert 0 < redis_client.ttl("name") <= 10

    def test_merge(self, redis_client):
        """Merging sums into a new leaderboard."""
        foo = Leaderboard("foo", redis_client=redis_client)
        bar = Leaderboard("bar", redis_client=redis_client)
        foo.set_scores({"foo_1": 1, "foo_2": 2})
        bar.set_scores({"bar_1": 3, "bar_2": 4, "bar_3": 5})

        keys = ["bar"]
        assert foo.merge_into("foobar", keys) == 5
        assert keys == ["bar"]

        foobar = Leaderboard("foobar", redis_client=redis_client)
        assert foobar.total_members() == 5
        assert foobar.get_page(1)[0] == {"member": "bar_3", "rank": 1, "score": 5.0}

    def test_intersect(self, redis_client):
        """Intersecting keeps shared members with the chosen aggregate."""
        foo = Leaderboard("foo", redis_client=redis_client)
        bar = Leaderboard("bar", redis_client=redis_client)
        foo.set_scores({"foo_1": 1, "foo_2": 2, "bar_3": 6})
        bar.set_scores({"bar_1": 3, "foo_1": 4, "bar_3": 5})

        assert foo.intersect_into("foobar", ["bar"], aggregate="MAX") == 2

        foobar = Leaderboard("foobar", redis_client=redis_client)
        assert foobar.get_page(1)[0] == {"member": "bar_3", "rank": 1, "score": 6.0}
        assert foo.intersect_into("foobar", ["bar"], Aggregate.MIN) == 2
        assert foobar.get_score("bar_3") == 5.0
