"""
Queue builder for review sessions.

Builds ordered review queues by:
1. Partitioning due words into new and review buckets
2. Capping the new bucket, keeping the most frequently encountered words
3. Shuffling each bucket independently
4. Placing new words ahead of reviews
"""

import logging
import random
from dataclasses import dataclass, field

from glean.domain.constants import DEFAULT_NEW_CARD_CAP
from glean.domain.models import Bucket, CardState, QueueEntry, VocabularyWord

logger = logging.getLogger(__name__)


@dataclass
class QueueBuildResult:
    """Result of queue building operation."""

    queue: list[QueueEntry]  # Ordered entries to present
    deferred_new: list[VocabularyWord] = field(default_factory=list)  # New words over the cap

    @property
    def new_count(self) -> int:
        return sum(1 for entry in self.queue if entry.bucket == Bucket.NEW)

    @property
    def review_count(self) -> int:
        return sum(1 for entry in self.queue if entry.bucket == Bucket.REVIEW)

    def __len__(self) -> int:
        return len(self.queue)


def build_review_queue(
    due_words: list[VocabularyWord],
    new_cap: int = DEFAULT_NEW_CARD_CAP,
    rng: random.Random | None = None,
) -> QueueBuildResult:
    """
    Build a review queue from the due-word set.

    Args:
        due_words: Words due for review (already filtered for ignored/due-ness)
        new_cap: Maximum number of never-reviewed words in the queue (default: 20)
        rng: Random source for shuffling; pass a seeded Random for reproducible order

    Returns:
        QueueBuildResult with the ordered queue and the new words left out by the cap
    """
    if new_cap < 0:
        raise ValueError(f"new_cap must be non-negative, got {new_cap}")

    rng = rng or random.Random()

    new_words = [w for w in due_words if w.card.state == CardState.NEW]
    review_words = [w for w in due_words if w.card.state != CardState.NEW]

    deferred: list[VocabularyWord] = []
    if len(new_words) > new_cap:
        # Stable sort: ties keep their input order
        new_words = sorted(new_words, key=lambda w: w.times_seen, reverse=True)
        deferred = new_words[new_cap:]
        new_words = new_words[:new_cap]
        logger.info(f"New-word cap reached: deferring {len(deferred)} of {len(due_words)} due")

    rng.shuffle(new_words)
    rng.shuffle(review_words)

    queue = [QueueEntry(word=w, bucket=Bucket.NEW) for w in new_words]
    queue += [QueueEntry(word=w, bucket=Bucket.REVIEW) for w in review_words]

    return QueueBuildResult(queue=queue, deferred_new=deferred)
