import logging
from collections import namedtuple

import redis

from leaderboard.policy import exclusive, score_key

logger = logging.getLogger(__name__)

TieIndexReport = namedtuple("TieIndexReport", ["missing", "stale"])


class TieIndexConflictError(Exception):
    def __init__(self, tie_index, key, member):
        self._tie_index = tie_index
        self._key = key
        self._member = member

    def __str__(self):
        return "{2}: '{0}' changed while updating member '{1}' (type: {3})".format(
                self._key, self._member, type(self).__name__,
                type(self._tie_index).__name__)


class TieIndex:
    """Keeps one sorted-set entry per distinct score held in the leaderboard.

    Every mutation reads holder counts under WATCH and applies the score
    change together with the tie index change in a single MULTI/EXEC. If the
    watched key moves in between, TieIndexConflictError is raised and nothing
    is written.
    """

    def __init__(self, key, ties_key, *, store, member_data_key=None):
        self._key = key
        self._ties_key = ties_key
        self._member_data_key = member_data_key
        self._store = store

    @property
    def key(self):
        return self._ties_key

    def upsert(self, member, score, member_data=None):
        score = float(score)
        with self._store.watching(self._key) as pipeline:
            self._apply_rescore(pipeline, member, lambda previous: score, member_data)
        return score

    def increment(self, member, delta, member_data=None):
        with self._store.watching(self._key) as pipeline:
            return self._apply_rescore(pipeline, member,
                    lambda previous: (previous or 0.0) + float(delta), member_data)

    def remove(self, member):
        with self._store.watching(self._key) as pipeline:
            previous = pipeline.zscore(self._key, member)
            sole_holder = previous is not None and self._holders(pipeline, previous) == 1

            pipeline.multi()
            pipeline.zrem(self._key, member)
            if sole_holder:
                pipeline.zrem(self._ties_key, score_key(previous))
            if self._member_data_key:
                pipeline.hdel(self._member_data_key, member)

            res = self._execute(pipeline, member)

        logger.debug("removed %s from %s (score freed: %s)", member, self._key, sole_holder)
        return int(res[0])

    def remove_score_range(self, min_score, max_score):
        # Tie entries are keyed 1:1 by score, so the same bounds apply to both sets
        with self._store.batch(self._key) as pipeline:
            pipeline.zremrangebyscore(self._key, min_score, max_score)
            pipeline.zremrangebyscore(self._ties_key, min_score, max_score)
            res = pipeline.execute()
        return int(res[0])

    def remove_rank_range(self, start, end):
        """Remove ascending positions start..end (inclusive, non-negative)."""
        with self._store.watching(self._key) as pipeline:
            first = self._score_at(pipeline, start)
            last = self._score_at(pipeline, end)
            if first is None or last is None:
                pipeline.unwatch()
                return 0
            before = self._score_at(pipeline, start - 1) if start > 0 else None
            after = self._score_at(pipeline, end + 1)

            pipeline.multi()
            pipeline.zremrangebyrank(self._key, start, end)
            if first != last:
                pipeline.zremrangebyscore(self._ties_key, exclusive(first), exclusive(last))
            for boundary in {first, last}:
                if boundary != before and boundary != after:
                    pipeline.zrem(self._ties_key, score_key(boundary))

            res = self._execute(pipeline, None)
        return int(res[0])

    def distinct_scores(self):
        pairs = self._store.range_by_position(self._key, 0, -1, True, with_scores=True)
        return {score_key(score): score for _, score in pairs}

    def verify(self):
        expected = self.distinct_scores()
        indexed = dict(self._store.range_by_position(
                self._ties_key, 0, -1, True, with_scores=True))

        report = TieIndexReport(
                missing=sorted(set(expected) - set(indexed)),
                stale=sorted(set(indexed) - set(expected)))
        if report.missing or report.stale:
            logger.warning("tie index %s diverges from %s: missing=%s stale=%s",
                    self._ties_key, self._key, report.missing, report.stale)
        return report

    def rebuild(self):
        expected = self.distinct_scores()
        with self._store.batch(self._key) as pipeline:
            pipeline.delete(self._ties_key)
            if expected:
                pipeline.zadd(self._ties_key, expected)
            pipeline.execute()
        logger.info("rebuilt tie index %s with %d scores", self._ties_key, len(expected))
        return len(expected)

    def _apply_rescore(self, pipeline, member, new_score_for, member_data):
        previous = pipeline.zscore(self._key, member)
        score = new_score_for(previous)
        sole_holder = (previous is not None and previous != score
                and self._holders(pipeline, previous) == 1)

        pipeline.multi()
        pipeline.zadd(self._key, {member: score})
        pipeline.zadd(self._ties_key, {score_key(score): score})
        if sole_holder:
            pipeline.zrem(self._ties_key, score_key(previous))
        if member_data is not None and self._member_data_key:
            pipeline.hset(self._member_data_key, member, member_data)

        self._execute(pipeline, member)
        logger.debug("scored %s=%s in %s (previous %s)", member, score, self._key, previous)
        return score

    def _holders(self, pipeline, score):
        return pipeline.zcount(self._key, score, score)

    def _score_at(self, pipeline, position):
        entry = pipeline.zrange(self._key, position, position, withscores=True)
        return float(entry[0][1]) if entry else None

    def _execute(self, pipeline, member):
        try:
            return pipeline.execute()
        except redis.exceptions.WatchError:
            logger.warning("lost race on %s while updating %s", self._key, member)
            raise TieIndexConflictError(self, self._key, member)
