import math
from collections import namedtuple

DEFAULT_PAGE_SIZE = 25


class Window(namedtuple("Window", ["start", "end"])):
    """Inclusive 0-based offsets into the native ordering."""

    __slots__ = ()

    @property
    def empty(self):
        return self.end < self.start

    @property
    def size(self):
        return 0 if self.empty else self.end - self.start + 1


EMPTY_WINDOW = Window(0, -1)


def normalize_page_size(page_size, default=DEFAULT_PAGE_SIZE):
    if page_size is None or page_size < 1:
        return default
    return int(page_size)


def total_pages(total_members, page_size):
    return int(math.ceil(total_members / float(page_size)))


def page_for_position(position, page_size):
    return int(math.ceil((position + 1) / float(page_size)))


def page_window(page, page_size, total_members):
    if total_members < 1:
        return EMPTY_WINDOW

    page = min(max(page, 1), total_pages(total_members, page_size))

    start = max((page - 1) * page_size, 0)
    end = start + page_size - 1
    return _clamp(start, end, total_members)


def around_member_window(position, page_size, total_members=None):
    start = max(position - page_size // 2, 0)
    end = start + page_size - 1
    if total_members is None:
        return Window(start, end)
    return _clamp(start, end, total_members)


def rank_range_window(start_rank, end_rank, total_members):
    start = max(start_rank - 1, 0)
    return _clamp(start, end_rank - 1, total_members)


def _clamp(start, end, total_members):
    end = min(end, total_members - 1)
    if end < start:
        return EMPTY_WINDOW
    return Window(start, end)
