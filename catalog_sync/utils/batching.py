# catalog_sync/utils/batching.py
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive slices of ``size``; the last may be shorter."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]


def unique(items: Iterable[T]) -> list[T]:
    seen = set()
    out = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def find_duplicates(items: Iterable[T]) -> list[T]:
    seen = set()
    dupes = []
    for item in items:
        if item in seen and item not in dupes:
            dupes.append(item)
        seen.add(item)
    return dupes


_NON_HANDLE = re.compile(r"[^\w\s\-+]|_", re.UNICODE)

def handleize(text: str) -> str:
    text = _NON_HANDLE.sub("", text.lower().strip())
    text = re.sub(r"\s+", "-", text)
    return re.sub(r"-+", "-", text)


def fan_out(fn: Callable[[T], R], items: Sequence[T]) -> list[R]:
    """
    Run ``fn`` over one batch concurrently and wait for every call to settle.
    Results keep input order. Batch size bounds the concurrency; the caller
    starts the next batch only after this returns.
    """
    items = list(items)
    if not items:
        return []
    if len(items) == 1:
        return [fn(items[0])]
    with ThreadPoolExecutor(max_workers=len(items)) as pool:
        return list(pool.map(fn, items))
