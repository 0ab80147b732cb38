"""
Service factory.
Centralizes the selection of the repository adapter and the wiring of the
application services from an AppConfig.
"""

import logging
import random
from dataclasses import dataclass, field

from glean.application.config import AppConfig
from glean.application.queue_builder import QueueBuildResult, build_review_queue
from glean.application.review_session import ReviewSession
from glean.application.scheduler import CardScheduler
from glean.application.stats import MasteryPolicy, MetricsCalculator, StatsAggregator
from glean.application.utils.time import Clock, resolve_timezone, utcnow
from glean.application.vocabulary_store import VocabularyStore
from glean.domain.ports import VocabularyRepository
from glean.infrastructure.memory_repository import InMemoryRepository
from glean.infrastructure.sqlite_repository import SqliteRepository

logger = logging.getLogger(__name__)


def get_repository(config: AppConfig) -> VocabularyRepository:
    """
    Returns the repository implementation selected by config.
    """
    if config.backend == "memory":
        return InMemoryRepository()

    logger.debug(f"Backend: sqlite ({config.db_path})")
    return SqliteRepository(config.db_path)


@dataclass
class Services:
    """The wired application services sharing one repository."""

    config: AppConfig
    repo: VocabularyRepository
    scheduler: CardScheduler
    stats: StatsAggregator
    store: VocabularyStore
    metrics: MetricsCalculator
    clock: Clock = utcnow
    rng: random.Random = field(default_factory=random.Random)

    async def build_queue(self, language: str) -> QueueBuildResult:
        due = await self.store.due_words(language, self.clock())
        return build_review_queue(due, new_cap=self.config.new_card_cap, rng=self.rng)

    async def new_session(self, language: str) -> ReviewSession:
        """Build a queue from what is due now and wrap it in a session."""
        result = await self.build_queue(language)
        return ReviewSession(
            result,
            self.store,
            self.stats,
            self.scheduler,
            language=language,
            requeue_offset=self.config.requeue_offset,
            clock=self.clock,
        )

    async def close(self) -> None:
        await self.repo.close()


def build_services(
    config: AppConfig,
    repo: VocabularyRepository | None = None,
    clock: Clock = utcnow,
    rng: random.Random | None = None,
) -> Services:
    repo = repo or get_repository(config)
    policy = MasteryPolicy(
        min_interval_days=config.mastery_min_interval_days,
        max_lapses=config.mastery_max_lapses,
    )
    stats = StatsAggregator(repo, policy=policy, tz=resolve_timezone(config.timezone))
    scheduler = CardScheduler(
        desired_retention=config.desired_retention,
        maximum_interval=config.maximum_interval,
        enable_fuzzing=config.enable_fuzzing,
        fuzz_factor=config.fuzz_factor,
        seed=config.fuzz_seed,
    )
    return Services(
        config=config,
        repo=repo,
        scheduler=scheduler,
        stats=stats,
        store=VocabularyStore(repo, stats, clock=clock),
        metrics=MetricsCalculator(policy),
        clock=clock,
        rng=rng or random.Random(config.fuzz_seed),
    )
