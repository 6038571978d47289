import logging
import math
from enum import Enum

import redis

from leaderboard import windows
from leaderboard.percentile import interpolate, percentile_for, percentile_index
from leaderboard.policy import Order, RankPolicy, Ranker
from leaderboard.results import RankedEntry, RequestOptions, ResultAssembler
from leaderboard.store import ScoreStore
from leaderboard.ties import TieIndex, TieIndexReport

logger = logging.getLogger(__name__)


class Aggregate(Enum):
    SUM = "SUM"
    MIN = "MIN"
    MAX = "MAX"


class Leaderboard:
    """A ranked view over one redis sorted set.

    The rank policy is fixed at construction: STANDARD reports native
    positions, TIE_AWARE gives equal scores one shared competition rank
    (1, 1, 3) and DENSE gives them a shared dense rank (1, 1, 2). Both tie
    policies keep a tie index at "<key>:<ties_namespace>" in step with every
    score change.

    Per-call keyword options (with_scores, with_rank, page_size, ...) are
    merged over ``defaults``; see RequestOptions.
    """

    def __init__(self, key, *, redis_client, order=Order.HIGH_TO_LOW,
            policy=RankPolicy.STANDARD, page_size=windows.DEFAULT_PAGE_SIZE,
            field_names=None, defaults=None, ties_namespace="ties",
            member_data_namespace="member_data"):
        self._key = key
        self._order = Order(order)
        self._policy = RankPolicy(policy)
        self.page_size = page_size
        self._defaults = defaults or RequestOptions()

        self._ties_namespace = ties_namespace
        self._ties_key = key + ":" + ties_namespace
        self._member_data_key = key + ":" + member_data_namespace

        self._store = ScoreStore(redis_client=redis_client)
        self._ranker = Ranker(key, self._ties_key, store=self._store,
                order=self._order, policy=self._policy)
        self._ties = None
        if self._policy.uses_tie_index:
            self._ties = TieIndex(key, self._ties_key, store=self._store,
                    member_data_key=self._member_data_key)
        self._assembler = ResultAssembler(store=self._store, ranker=self._ranker,
                member_data_key=self._member_data_key, field_names=field_names)

    @classmethod
    def from_url(cls, key, url, **kwargs):
        return cls(key, redis_client=redis.Redis.from_url(url), **kwargs)

    @property
    def key(self):
        return self._key

    @property
    def ties_key(self):
        return self._ties_key

    @property
    def member_data_key(self):
        return self._member_data_key

    @property
    def order(self):
        return self._order

    @property
    def policy(self):
        return self._policy

    @property
    def page_size(self):
        return self._page_size

    @page_size.setter
    def page_size(self, page_size):
        self._page_size = windows.normalize_page_size(page_size)

    # Mutations

    def set_score(self, member, score, member_data=None):
        if self._ties is not None:
            self._ties.upsert(member, score, member_data)
            return

        with self._store.batch(self._key) as pipeline:
            pipeline.zadd(self._key, {member: score})
            if member_data is not None:
                pipeline.hset(self._member_data_key, member, member_data)
            pipeline.execute()

    def set_score_if(self, condition, member, score, member_data=None):
        """Set the score only when condition(member, current_score, score,
        member_data, order) returns true. Returns whether it was set."""
        current_score = self.get_score(member)
        if not condition(member, current_score, score, member_data, self._order):
            return False
        self.set_score(member, score, member_data)
        return True

    def set_scores(self, members_and_scores):
        if hasattr(members_and_scores, "items"):
            members_and_scores = members_and_scores.items()
        pairs = [(member, float(score)) for member, score in members_and_scores]
        if not pairs:
            return 0

        if self._ties is not None:
            for member, score in pairs:
                self._ties.upsert(member, score)
        else:
            self._store.upsert_many(self._key, dict(pairs))
        return len(pairs)

    def change_score(self, member, delta, member_data=None):
        if self._ties is not None:
            return self._ties.increment(member, delta, member_data)

        with self._store.batch(self._key) as pipeline:
            pipeline.zincrby(self._key, delta, member)
            if member_data is not None:
                pipeline.hset(self._member_data_key, member, member_data)
            res = pipeline.execute()
        return float(res[0])

    def remove_member(self, member):
        if self._ties is not None:
            return self._ties.remove(member)

        with self._store.batch(self._key) as pipeline:
            pipeline.zrem(self._key, member)
            pipeline.hdel(self._member_data_key, member)
            res = pipeline.execute()
        return int(res[0])

    def remove_members_in_score_range(self, min_score, max_score):
        if self._ties is not None:
            removed = self._ties.remove_score_range(min_score, max_score)
        else:
            removed = self._store.remove_by_score_range(self._key, min_score, max_score)
        logger.debug("removed %d members scored %s..%s from %s",
                removed, min_score, max_score, self._key)
        return removed

    def remove_members_outside_rank(self, rank):
        """Keep the first ``rank`` positions and drop everyone behind them."""
        total = self.total_members()
        rank = max(rank, 0)
        if rank >= total:
            return 0

        if self._order.ascending:
            start, end = rank, total - 1
        else:
            start, end = 0, total - rank - 1

        if self._ties is not None:
            return self._ties.remove_rank_range(start, end)
        return self._store.remove_by_rank_range(self._key, start, end)

    def set_member_data(self, member, member_data):
        self._store.set_field(self._member_data_key, member, member_data)

    def remove_member_data(self, member):
        return self._store.delete_field(self._member_data_key, member)

    def delete(self):
        return self._store.delete(self._key, self._ties_key, self._member_data_key)

    def expire(self, seconds):
        res = self._store.expire(*self._owned_keys(), seconds=seconds)
        return bool(res[0])

    def expire_at(self, timestamp):
        res = self._store.expire_at(*self._owned_keys(), timestamp=timestamp)
        return bool(res[0])

    def merge_into(self, destination, keys, aggregate=Aggregate.SUM):
        count = self._store.union_into(destination, [self._key] + list(keys),
                Aggregate(aggregate).value)
        self._rebuild_destination_ties(destination)
        return count

    def intersect_into(self, destination, keys, aggregate=Aggregate.SUM):
        count = self._store.intersect_into(destination, [self._key] + list(keys),
                Aggregate(aggregate).value)
        self._rebuild_destination_ties(destination)
        return count

    # Single member queries

    def get_score(self, member):
        return self._store.score_of(self._key, member)

    def get_rank(self, member):
        return self._ranker.rank_of(member)

    def get_score_and_rank(self, member):
        score, rank = self._ranker.scores_and_ranks([member])[0]
        return RankedEntry(member, score, rank)

    def has_member(self, member):
        return self.get_score(member) is not None

    def get_member_data(self, member):
        return self._store.get_fields(self._member_data_key, [member])[0]

    def get_members_data(self, members):
        return self._store.get_fields(self._member_data_key, list(members))

    def page_for(self, member, page_size=None):
        position = self._store.rank_of(self._key, member, self._order.ascending)
        if position is None:
            return 0
        return windows.page_for_position(position,
                windows.normalize_page_size(page_size, self._page_size))

    def get_percentile(self, member):
        with self._store.batch(self._key) as pipeline:
            pipeline.zcard(self._key)
            pipeline.zrevrank(self._key, member)
            total, position = pipeline.execute()

        if position is None:
            return None
        return percentile_for(total, position, self._order)

    def get_score_at_percentile(self, percentile):
        index = percentile_index(self.total_members(), percentile, self._order)
        if index is None:
            return None

        pairs = self._store.range_by_position(self._key, int(math.floor(index)),
                int(math.ceil(index)), True, with_scores=True)
        if not pairs:
            return None
        return interpolate(index, pairs[0][1], pairs[-1][1])

    # Counts

    def total_members(self):
        return self._store.count(self._key)

    def total_members_in_score_range(self, min_score, max_score):
        return self._store.count_in_score_range(self._key, min_score, max_score)

    def total_pages(self, page_size=None):
        return windows.total_pages(self.total_members(),
                windows.normalize_page_size(page_size, self._page_size))

    # Pages and windows

    def get_page(self, page, **options):
        options = self._options(options)
        window = windows.page_window(page, self._page_size_for(options),
                self.total_members())
        return self._window_entries(window, options)

    def get_all(self, **options):
        options = self._options(options)
        total = self.total_members()
        return self._window_entries(windows.rank_range_window(1, total, total), options)

    def get_around(self, member, **options):
        options = self._options(options)
        position = self._store.rank_of(self._key, member, self._order.ascending)
        if position is None:
            return []

        window = windows.around_member_window(position, self._page_size_for(options))
        return self._window_entries(window, options)

    def get_rank_range(self, start_rank, end_rank, **options):
        options = self._options(options)
        window = windows.rank_range_window(start_rank, end_rank, self.total_members())
        return self._window_entries(window, options)

    def get_top(self, number, **options):
        return self.get_rank_range(1, number, **options)

    def get_member_at(self, position, **options):
        entries = self.get_rank_range(position, position, **options)
        if position < 1 or not entries:
            return None
        return entries[0]

    def get_score_range(self, min_score, max_score, **options):
        options = self._options(options)
        pairs = self._store.range_by_score(self._key, min_score, max_score,
                self._order.ascending, with_scores=True)
        if not pairs:
            return []

        first_position = 0
        if not options.members_only:
            first_position = self._store.rank_of(self._key, pairs[0][0],
                    self._order.ascending) or 0
        return self._assembler.for_run(pairs, first_position, options)

    def get_ranked_in_list(self, members, **options):
        return self._assembler.for_members(list(members), self._options(options))

    def get_standings(self):
        pairs = self._store.range_by_position(self._key, 0, -1,
                self._order.ascending, with_scores=True)
        ranks = self._ranker.ranks_for_run(pairs, 0)
        return [(member, rank, score) for (member, score), rank in zip(pairs, ranks)]

    # Tie index maintenance

    def verify_ties(self):
        if self._ties is None:
            return TieIndexReport(missing=[], stale=[])
        return self._ties.verify()

    def rebuild_ties(self):
        if self._ties is None:
            return 0
        return self._ties.rebuild()

    def _options(self, overrides):
        return self._defaults.merged(**overrides) if overrides else self._defaults

    def _page_size_for(self, options):
        return windows.normalize_page_size(options.page_size, self._page_size)

    def _window_entries(self, window, options):
        if window.empty:
            return []
        pairs = self._store.range_by_position(self._key, window.start, window.end,
                self._order.ascending, with_scores=True)
        return self._assembler.for_run(pairs, window.start, options)

    def _owned_keys(self):
        keys = [self._key, self._member_data_key]
        if self._ties is not None:
            keys.append(self._ties_key)
        return keys

    def _rebuild_destination_ties(self, destination):
        if self._ties is None:
            return
        TieIndex(destination, destination + ":" + self._ties_namespace,
                store=self._store).rebuild()
