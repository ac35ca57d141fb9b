"""
URL frontier for a single crawl run.
Owns the visited set and the FIFO queue of pending crawl targets.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Set


@dataclass
class CrawlTarget:
    """A discovered URL waiting to be fetched."""
    url: str
    depth: int
    category: str


class FrontierQueue:
    """
    Breadth-first frontier for one crawl run.

    A URL is marked visited the moment it is first discovered, not when it is
    fetched, so a URL can be queued at most once per run. The depth recorded
    for a URL is the depth at which it was first discovered, even if a
    shorter path to it turns up later.
    """

    def __init__(self, max_depth: int):
        if max_depth < 0:
            raise ValueError("max_depth must be non-negative")
        self.max_depth = max_depth
        self.logger = logging.getLogger(__name__)

        self._pending: Deque[CrawlTarget] = deque()
        self._visited: Set[str] = set()

    def mark_visited(self, url: str) -> bool:
        """
        Register a URL as seen without queueing it.
        Returns True if the URL was new.
        """
        if url in self._visited:
            return False
        self._visited.add(url)
        return True

    def seed(self, targets: Iterable[CrawlTarget]) -> int:
        """Queue initial targets. Returns the number actually added."""
        added = 0
        for target in targets:
            if self.mark_visited(target.url):
                self._pending.append(target)
                added += 1
        self.logger.debug(f"Seeded frontier with {added} targets")
        return added

    def take(self, n: int) -> List[CrawlTarget]:
        """Remove and return up to n targets in FIFO order."""
        if n < 1:
            raise ValueError("take() needs n >= 1")
        batch = []
        while self._pending and len(batch) < n:
            batch.append(self._pending.popleft())
        return batch

    def offer(self, links: Iterable[str], at_depth: int, category: str) -> int:
        """
        Queue links discovered on a page at depth at_depth.
        Returns the number of new targets.
        """
        if at_depth >= self.max_depth:
            return 0

        added = 0
        for link in links:
            if self.mark_visited(link):
                self._pending.append(CrawlTarget(url=link, depth=at_depth + 1, category=category))
                added += 1

        if added:
            self.logger.debug(f"Queued {added} new targets at depth {at_depth + 1}")
        return added

    def is_empty(self) -> bool:
        """Check if no targets are pending."""
        return not self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, url: str) -> bool:
        return url in self._visited

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': len(self._pending),
            'total_visited': len(self._visited),
        }
