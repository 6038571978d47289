from enum import Enum


class Order(Enum):
    HIGH_TO_LOW = "desc"
    LOW_TO_HIGH = "asc"

    @property
    def ascending(self):
        return self is Order.LOW_TO_HIGH


class RankPolicy(Enum):
    STANDARD = "standard"
    TIE_AWARE = "tie_aware"
    DENSE = "dense"

    @property
    def uses_tie_index(self):
        return self is not RankPolicy.STANDARD


def score_key(score):
    # Adding 0.0 folds -0.0 into 0.0 so equal floats always share one key
    return repr(float(score) + 0.0)


def exclusive(score):
    return "(" + repr(float(score))


class Ranker:
    """Turns native sorted-set positions into reported 1-based ranks.

    STANDARD ranks are the native position plus one. TIE_AWARE ranks are
    competition ranks: one plus the number of members with a strictly better
    score. DENSE ranks are the score's position among the distinct scores
    kept in the tie index, plus one.
    """

    def __init__(self, key, ties_key, *, store, order, policy):
        self._key = key
        self._ties_key = ties_key
        self._store = store
        self._order = order
        self._policy = policy

    @property
    def policy(self):
        return self._policy

    def rank_of(self, member):
        if self._policy is RankPolicy.STANDARD:
            position = self._store.rank_of(self._key, member, self._order.ascending)
            return None if position is None else position + 1

        score = self._store.score_of(self._key, member)
        if score is None:
            return None
        return self.ranks_for_scores([score])[score]

    def scores_and_ranks(self, members):
        if not members:
            return []

        with self._store.batch(self._key, transaction=False) as pipeline:
            for member in members:
                pipeline.zscore(self._key, member)
                if self._policy is RankPolicy.STANDARD:
                    self._queue_position(pipeline, member)
            responses = pipeline.execute()

        if self._policy is RankPolicy.STANDARD:
            results = []
            for index in range(len(members)):
                score, position = responses[index * 2], responses[index * 2 + 1]
                if score is None or position is None:
                    results.append((None, None))
                else:
                    results.append((float(score), position + 1))
            return results

        scores = [None if s is None else float(s) for s in responses]
        ranks = self.ranks_for_scores([s for s in scores if s is not None])
        return [(s, None if s is None else ranks.get(s)) for s in scores]

    def ranks_for_scores(self, scores):
        """Map each distinct score to its tie-aware or dense rank in one round trip."""
        distinct = list(dict.fromkeys(scores))
        if not distinct:
            return {}

        with self._store.batch(self._key, transaction=False) as pipeline:
            for score in distinct:
                if self._policy is RankPolicy.DENSE:
                    if self._order.ascending:
                        pipeline.zrank(self._ties_key, score_key(score))
                    else:
                        pipeline.zrevrank(self._ties_key, score_key(score))
                elif self._order.ascending:
                    pipeline.zcount(self._key, "-inf", exclusive(score))
                else:
                    pipeline.zcount(self._key, exclusive(score), "+inf")
            responses = pipeline.execute()

        return {score: None if r is None else int(r) + 1
                for score, r in zip(distinct, responses)}

    def ranks_for_run(self, entries, first_position):
        """Rank a contiguous slice of (member, score) pairs in native order.

        Only the first entry needs the store; the rest follow from score runs.
        """
        if not entries:
            return []

        if self._policy is RankPolicy.STANDARD:
            return [first_position + i + 1 for i in range(len(entries))]

        first_score = entries[0][1]
        current_rank = self.ranks_for_scores([first_score])[first_score]
        current_score = first_score
        ranks = [current_rank]

        for index, (_, score) in enumerate(entries[1:], start=1):
            if score != current_score:
                current_score = score
                if self._policy is RankPolicy.DENSE:
                    current_rank += 1
                else:
                    current_rank = first_position + index + 1
            ranks.append(current_rank)

        return ranks

    def _queue_position(self, pipeline, member):
        if self._order.ascending:
            pipeline.zrank(self._key, member)
        else:
            pipeline.zrevrank(self._key, member)
