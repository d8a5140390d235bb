"""Build concrete decoy tasks and Poisson-timed batches from user settings."""

import random
from urllib.parse import quote

import structlog

from .config import Config
from .models import TaskDescriptor, TaskKind
from .random_process import sample_inter_arrival, uniform_choice, weighted_choice
from .settings import GenerationSettings, is_enabled

logger = structlog.get_logger()

TASK_KINDS = [TaskKind.SEARCH, TaskKind.BROWSE, TaskKind.AD_CLICK]


class TaskGenerator:
    """Turns a settings snapshot into task descriptors. Never fails."""

    def __init__(
        self,
        config: Config,
        settings: GenerationSettings,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.catalog = config.catalog
        self.settings = settings
        self.rng = rng or random.Random()

    def next_task_type(self, weights: dict[str, float] | None = None) -> TaskKind:
        """Three-way weighted choice; weights are relative, not percentages."""
        weights = weights if weights is not None else self.settings.task_weights
        if sum(max(weights.get(k.value, 0), 0) for k in TASK_KINDS) <= 0:
            weights = self.config.default_task_weights
        return weighted_choice(
            TASK_KINDS, lambda k: max(weights.get(k.value, 0), 0), self.rng
        )

    def _duration(self, kind: TaskKind) -> int:
        low, high = self.config.duration_range(kind)
        return self.rng.randint(low, high)

    def _browse(self, offset: float) -> TaskDescriptor:
        sites = self.catalog.sites_for(self.settings.categories)
        return TaskDescriptor(
            kind=TaskKind.BROWSE,
            target=uniform_choice(sites, self.rng),
            duration_budget_ms=self._duration(TaskKind.BROWSE),
            scheduled_offset_sec=offset,
        )

    def _search(self, offset: float) -> TaskDescriptor:
        engines = self.settings.engines
        enabled = [e for e in self.catalog.search_engines if is_enabled(engines.get(e.id))]
        if not enabled:
            # Never emit a search without an engine
            return self._browse(offset)

        def weight_of(engine):
            override = engines.get(engine.id)
            if isinstance(override, dict) and override.get("weight") is not None:
                return max(float(override["weight"]), 0.0)
            return engine.weight

        if sum(weight_of(e) for e in enabled) > 0:
            engine = weighted_choice(enabled, weight_of, self.rng)
        else:
            engine = uniform_choice(enabled, self.rng)
        query = uniform_choice(self.catalog.search_terms, self.rng)

        return TaskDescriptor(
            kind=TaskKind.SEARCH,
            target=engine.url_for(quote(query, safe="")),
            duration_budget_ms=self._duration(TaskKind.SEARCH),
            scheduled_offset_sec=offset,
            search_engine=engine.name,
            search_query=query,
        )

    def _ad_click(self, offset: float) -> TaskDescriptor:
        return TaskDescriptor(
            kind=TaskKind.AD_CLICK,
            target=uniform_choice(self.catalog.ad_sites, self.rng),
            duration_budget_ms=self._duration(TaskKind.AD_CLICK),
            scheduled_offset_sec=offset,
        )

    def build_task(self, offset: float = 0.0) -> TaskDescriptor:
        kind = self.next_task_type()
        if kind is TaskKind.SEARCH:
            return self._search(offset)
        if kind is TaskKind.BROWSE:
            return self._browse(offset)
        return self._ad_click(offset)

    def build_batch(self, arrivals_per_period: float, period: float) -> list[TaskDescriptor]:
        """
        Build the tasks for one tick window.

        Accumulates exponential gaps at rate ``arrivals_per_period / period``
        from zero and emits a task at each arrival that lands inside the
        window, which approximates a homogeneous Poisson process.

        Returns:
            Tasks ordered by non-decreasing ``scheduled_offset_sec`` in [0, period)
        """
        if arrivals_per_period <= 0 or period <= 0:
            return []

        rate = arrivals_per_period / period
        batch = []
        elapsed = 0.0
        while True:
            elapsed += sample_inter_arrival(rate, self.rng)
            if elapsed >= period:
                break
            batch.append(self.build_task(offset=elapsed))

        logger.debug("batch_built", size=len(batch), rate=arrivals_per_period, period=period)
        return batch
