import logging
from contextlib import contextmanager

import redis

logger = logging.getLogger(__name__)


class ScoreStoreUnavailableError(Exception):
    def __init__(self, store, key, cause):
        self._store = store
        self._key = key
        self._cause = cause

    def __str__(self):
        return "{2}: Score store unavailable for '{0}' ({1})".format(
                self._key, self._cause, type(self).__name__)


class ScoreStore:
    """Sorted-set operations the ranking engine consumes, over a redis client.

    Every call names its key explicitly so one store can serve a leaderboard,
    its tie index and any merge destinations.
    """

    def __init__(self, *, redis_client):
        self._redis = redis_client

    def upsert(self, key, member, score):
        with self._available(key):
            return self._redis.zadd(key, {member: score})

    def upsert_many(self, key, mapping):
        with self._available(key):
            return self._redis.zadd(key, mapping)

    def remove(self, key, member):
        with self._available(key):
            return self._redis.zrem(key, member)

    def score_of(self, key, member):
        with self._available(key):
            return self._redis.zscore(key, member)

    def rank_of(self, key, member, ascending):
        with self._available(key):
            if ascending:
                return self._redis.zrank(key, member)
            return self._redis.zrevrank(key, member)

    def count(self, key):
        with self._available(key):
            return self._redis.zcard(key)

    def count_in_score_range(self, key, min_score, max_score):
        with self._available(key):
            return self._redis.zcount(key, min_score, max_score)

    def range_by_position(self, key, start, end, ascending, with_scores=False):
        with self._available(key):
            if ascending:
                raw = self._redis.zrange(key, start, end, withscores=with_scores)
            else:
                raw = self._redis.zrevrange(key, start, end, withscores=with_scores)
        return self._decode_range(raw, with_scores)

    def range_by_score(self, key, min_score, max_score, ascending, with_scores=False):
        with self._available(key):
            if ascending:
                raw = self._redis.zrangebyscore(key, min_score, max_score,
                        withscores=with_scores)
            else:
                raw = self._redis.zrevrangebyscore(key, max_score, min_score,
                        withscores=with_scores)
        return self._decode_range(raw, with_scores)

    def remove_by_score_range(self, key, min_score, max_score):
        with self._available(key):
            return self._redis.zremrangebyscore(key, min_score, max_score)

    def remove_by_rank_range(self, key, start, end):
        with self._available(key):
            return self._redis.zremrangebyrank(key, start, end)

    def union_into(self, destination, keys, aggregate):
        with self._available(destination):
            return self._redis.zunionstore(destination, keys, aggregate=aggregate)

    def intersect_into(self, destination, keys, aggregate):
        with self._available(destination):
            return self._redis.zinterstore(destination, keys, aggregate=aggregate)

    def expire(self, *keys, seconds):
        with self.batch(keys[0]) as pipeline:
            for key in keys:
                pipeline.expire(key, seconds)
            return pipeline.execute()

    def expire_at(self, *keys, timestamp):
        with self.batch(keys[0]) as pipeline:
            for key in keys:
                pipeline.expireat(key, timestamp)
            return pipeline.execute()

    def delete(self, *keys):
        with self._available(keys[0]):
            return self._redis.delete(*keys)

    def get_fields(self, key, fields):
        if not fields:
            return []
        with self._available(key):
            values = self._redis.hmget(key, fields)
        return [self.decode(v) for v in values]

    def set_field(self, key, field, value):
        with self._available(key):
            return self._redis.hset(key, field, value)

    def delete_field(self, key, field):
        with self._available(key):
            return self._redis.hdel(key, field)

    @contextmanager
    def batch(self, key, *, transaction=True):
        # Queued commands run as one MULTI/EXEC when transaction is set
        pipeline = self._redis.pipeline(transaction=transaction)
        with self._available(key):
            try:
                yield pipeline
            finally:
                pipeline.reset()

    @contextmanager
    def watching(self, key, *keys):
        pipeline = self._redis.pipeline(transaction=False)
        with self._available(key):
            try:
                pipeline.watch(key, *keys)
                yield pipeline
            finally:
                pipeline.reset()

    def decode(self, value):
        if isinstance(value, bytes):
            value = self._redis.get_encoder().decode(value, force=True)
        return value

    def decode_pairs(self, pairs):
        return [(self.decode(member), float(score)) for member, score in pairs]

    def _decode_range(self, raw, with_scores):
        if with_scores:
            return self.decode_pairs(raw)
        return [self.decode(member) for member in raw]

    @contextmanager
    def _available(self, key):
        try:
            yield
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            logger.error("score store call failed for %s: %s", key, e)
            raise ScoreStoreUnavailableError(self, key, e) from e
