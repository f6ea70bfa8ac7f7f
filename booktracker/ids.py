import itertools
import time

# Timestamp base plus a process-wide counter so ids generated in the same
# millisecond (bulk scans, imports) never collide.
_counter = itertools.count(1)


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def generate_unique_id() -> int:
    return now_ms() + next(_counter)


def generate_batch_ids(count: int) -> list[int]:
    """Generate ``count`` distinct ids for a batch of new items."""
    return [generate_unique_id() for _ in range(count)]
