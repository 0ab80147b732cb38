"""
Card scheduler: maps (card, rating, now) to the next MemoryCard.

Memory-strength math is delegated to the FSRS implementation in the `fsrs`
package. This module owns the conversion between glean's MemoryCard value type
and FSRS cards, the NEW state (which FSRS does not model), lapse/repetition
counters, and interval fuzzing with a reproducible random source.
"""

import logging
import random
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from fsrs import Card, Scheduler, State
from fsrs import Rating as FsrsRating

from glean.application.utils.time import as_utc
from glean.domain.constants import (
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_FUZZ_FACTOR,
    DEFAULT_MAXIMUM_INTERVAL,
    FUZZ_MIN_INTERVAL_DAYS,
)
from glean.domain.models import CardState, MemoryCard, Rating

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulingOption:
    """Projected outcome of one rating, shown to the learner before they choose."""

    rating: Rating
    card: MemoryCard
    interval: str


def format_interval(start: datetime, end: datetime) -> str:
    """Render the gap between two timestamps as <1m, 5m, 3h, 4d, 2mo or 1y."""
    minutes = int((end - start).total_seconds() // 60)
    if minutes < 1:
        return "<1m"
    if minutes < 60:
        return f"{minutes}m"

    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"

    days = hours // 24
    if days < 30:
        return f"{days}d"

    months = days // 30
    if months < 12:
        return f"{months}mo"

    return f"{days // 365}y"


class CardScheduler:
    """
    Stateless scheduling service.

    Configuration is fixed at construction; no method mutates the instance, so a
    single scheduler can be shared freely.
    """

    def __init__(
        self,
        desired_retention: float = DEFAULT_DESIRED_RETENTION,
        maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL,
        enable_fuzzing: bool = True,
        fuzz_factor: float = DEFAULT_FUZZ_FACTOR,
        seed: int | None = None,
    ):
        """
        Args:
            desired_retention: Target recall probability at the due date.
            maximum_interval: Upper bound on any interval, in days.
            enable_fuzzing: Spread long intervals to avoid due-date clustering.
            fuzz_factor: Maximum relative perturbation applied by fuzzing.
            seed: Seed for fuzzing; a random one is chosen when omitted.
        """
        if not 0.0 <= fuzz_factor < 1.0:
            raise ValueError(f"fuzz_factor must be in [0, 1), got {fuzz_factor}")

        self.maximum_interval = maximum_interval
        self.enable_fuzzing = enable_fuzzing
        self.fuzz_factor = fuzz_factor
        self.seed = seed if seed is not None else random.randrange(2**32)
        # FSRS fuzz draws from the global random module; ours is seeded per review.
        self._fsrs = Scheduler(
            desired_retention=desired_retention,
            maximum_interval=maximum_interval,
            enable_fuzzing=False,
        )

    def schedule(self, card: MemoryCard, rating: Rating, now: datetime) -> MemoryCard:
        """
        Apply a rating to a card and return the updated card.

        The input card is not modified.
        """
        rating = Rating.parse(rating)
        outcome = self._outcomes(card, now)[rating]
        logger.debug(
            f"Scheduled {CardState(card.state).name} card with {rating.label}: "
            f"{outcome.state.name}, due {outcome.due.isoformat()}"
        )
        return outcome

    def preview_all(self, card: MemoryCard, now: datetime) -> list[SchedulingOption]:
        """Outcome for every rating, in rating order, without committing anything."""
        return [
            SchedulingOption(
                rating=rating, card=outcome, interval=format_interval(now, outcome.due)
            )
            for rating, outcome in self._outcomes(card, now).items()
        ]

    def _outcomes(self, card: MemoryCard, now: datetime) -> dict[Rating, MemoryCard]:
        now_utc = as_utc(now)
        factor = self._fuzz_multiplier(card, now_utc)
        outcomes: dict[Rating, MemoryCard] = {}

        for rating in Rating:
            reviewed, _ = self._fsrs.review_card(
                self._to_fsrs(card, now_utc), FsrsRating(int(rating)), now_utc
            )
            outcome = self._from_fsrs(card, reviewed, rating, now_utc)
            outcomes[rating] = self._apply_fuzz(outcome, now_utc, factor)

        return outcomes

    def _to_fsrs(self, card: MemoryCard, now: datetime) -> Card:
        if card.state == CardState.NEW:
            return Card(due=now)

        return Card(
            state=State(int(card.state)),
            step=card.step,
            stability=card.stability,
            difficulty=card.difficulty,
            due=as_utc(card.due),
            last_review=as_utc(card.last_review) if card.last_review else None,
        )

    def _from_fsrs(
        self, prior: MemoryCard, reviewed: Card, rating: Rating, now: datetime
    ) -> MemoryCard:
        lapsed = prior.state == CardState.REVIEW and rating == Rating.AGAIN
        return MemoryCard(
            state=CardState(int(reviewed.state)),
            due=reviewed.due,
            stability=reviewed.stability or 0.0,
            difficulty=reviewed.difficulty or 0.0,
            last_review=now,
            step=reviewed.step,
            reps=prior.reps + 1,
            lapses=prior.lapses + (1 if lapsed else 0),
        )

    def _fuzz_multiplier(self, card: MemoryCard, now: datetime) -> float:
        """
        One factor per (seed, card, now), shared by all four ratings.

        Sharing the factor keeps Again <= Hard <= Good <= Easy ordering intact and
        makes preview_all agree with schedule for the same instant.
        """
        if not self.enable_fuzzing or self.fuzz_factor == 0.0:
            return 1.0
        rng = random.Random(f"{self.seed}:{card.reps}:{int(now.timestamp())}")
        return rng.uniform(1.0 - self.fuzz_factor, 1.0 + self.fuzz_factor)

    def _apply_fuzz(self, card: MemoryCard, now: datetime, factor: float) -> MemoryCard:
        if factor == 1.0 or card.state != CardState.REVIEW:
            return card

        days = (card.due - now).total_seconds() / 86400.0
        if days < FUZZ_MIN_INTERVAL_DAYS:
            return card

        fuzzed = min(max(round(days * factor), 1), self.maximum_interval)
        return replace(card, due=now + timedelta(days=fuzzed))
