import dataclasses
from collections import namedtuple
from enum import Enum

RankedEntry = namedtuple("RankedEntry", ["member", "score", "rank"])


class SortBy(Enum):
    NONE = "none"
    RANK = "rank"
    SCORE = "score"


@dataclasses.dataclass(frozen=True)
class FieldNames:
    member: str = "member"
    score: str = "score"
    rank: str = "rank"
    member_data: str = "member_data"


@dataclasses.dataclass(frozen=True)
class RequestOptions:
    """Shaping options for any query that returns leaderboard entries.

    with_scores / with_rank: include those fields in each entry.
    zero_index: report ranks starting at 0 instead of 1.
    with_member_data: attach the member's stored data string.
    members_only: return only the member field, ignoring the flags above.
    include_missing: keep entries for requested members that are not ranked.
    sort_by: stable re-sort of the result by rank or score.
    page_size: overrides the leaderboard page size; None or < 1 means default.
    """

    with_scores: bool = True
    with_rank: bool = True
    zero_index: bool = False
    with_member_data: bool = False
    members_only: bool = False
    include_missing: bool = True
    sort_by: SortBy = SortBy.NONE
    page_size: int = None

    def __post_init__(self):
        if not isinstance(self.sort_by, SortBy):
            object.__setattr__(self, "sort_by", SortBy(self.sort_by))

    def merged(self, **overrides):
        return dataclasses.replace(self, **overrides)


class ResultAssembler:
    def __init__(self, *, store, ranker, member_data_key, field_names=None):
        self._store = store
        self._ranker = ranker
        self._member_data_key = member_data_key
        self._fields = field_names or FieldNames()

    @property
    def field_names(self):
        return self._fields

    def for_members(self, members, options):
        """Entries for an arbitrary list of members, in the order given."""
        if options.members_only:
            return self._members_only(members)

        entries = []
        for member, (score, rank) in zip(members, self._ranker.scores_and_ranks(members)):
            if rank is None and not options.include_missing:
                continue
            entries.append(RankedEntry(member, score, rank))

        return self._render(entries, options)

    def for_run(self, pairs, first_position, options):
        """Entries for a contiguous slice of (member, score) pairs in native order."""
        if options.members_only:
            return self._members_only([member for member, _ in pairs])

        if options.with_rank or options.sort_by is SortBy.RANK:
            ranks = self._ranker.ranks_for_run(pairs, first_position)
        else:
            ranks = [None] * len(pairs)
        entries = [RankedEntry(member, score, rank)
                for (member, score), rank in zip(pairs, ranks)]

        return self._render(entries, options)

    def _members_only(self, members):
        return [{self._fields.member: member} for member in members]

    def _render(self, entries, options):
        member_data = []
        if options.with_member_data:
            member_data = self._store.get_fields(self._member_data_key,
                    [entry.member for entry in entries])

        rendered = []
        for index, entry in enumerate(entries):
            rank = entry.rank
            if rank is not None and options.zero_index:
                rank -= 1

            data = {self._fields.member: entry.member}
            if options.with_scores:
                data[self._fields.score] = entry.score
            if options.with_rank:
                data[self._fields.rank] = rank
            if options.with_member_data:
                data[self._fields.member_data] = member_data[index]

            rendered.append((entry._replace(rank=rank), data))

        if options.sort_by is SortBy.RANK:
            rendered.sort(key=lambda item: _missing_last(item[0].rank))
        elif options.sort_by is SortBy.SCORE:
            rendered.sort(key=lambda item: _missing_last(item[0].score))

        return [data for _, data in rendered]


def _missing_last(value):
    return (value is None, value if value is not None else 0)
