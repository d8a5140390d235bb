"""Configuration handling for Poissonarr."""

import os
from dataclasses import dataclass, field
from typing import Dict, List

import yaml

from .catalog import Catalog, SearchEngine
from .models import Intensity, TaskKind

DEFAULT_INTENSITY_LEVELS = {
    Intensity.LOW.value: 0.3,  # ~18/hr
    Intensity.MEDIUM.value: 1.0,  # ~60/hr
    Intensity.HIGH.value: 2.5,  # ~150/hr
    Intensity.MAX.value: 5.0,  # ~300/hr
}

DEFAULT_DURATION_RANGES_MS = {
    TaskKind.SEARCH.value: [5000, 15000],
    TaskKind.BROWSE.value: [8000, 25000],
    TaskKind.AD_CLICK.value: [6000, 12000],
}

DEFAULT_TASK_WEIGHTS = {
    TaskKind.SEARCH.value: 45,
    TaskKind.BROWSE.value: 40,
    TaskKind.AD_CLICK.value: 15,
}


@dataclass
class Config:
    """Main configuration class."""

    state_path: str = "/data/state.json"
    tick_period_seconds: float = 60.0
    grace_ms: int = 10000
    handoff_retry_delay_ms: int = 500
    log_capacity: int = 500
    fallback_bytes: int = 512000
    hourly_buckets: int = 24
    daily_buckets: int = 30
    timezone: str = "UTC"
    headless: bool = True
    control_host: str = "0.0.0.0"
    control_port: int = 8080
    intensity_levels: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_INTENSITY_LEVELS)
    )
    duration_ranges_ms: Dict[str, List[int]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_DURATION_RANGES_MS.items()}
    )
    default_task_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_TASK_WEIGHTS)
    )
    catalog: Catalog = field(default_factory=Catalog)

    def lambda_for(self, intensity: str) -> float:
        """Arrivals per tick period for an intensity level, medium if unknown."""
        return self.intensity_levels.get(
            intensity, self.intensity_levels.get(Intensity.MEDIUM.value, 1.0)
        )

    def duration_range(self, kind: TaskKind) -> tuple[int, int]:
        low, high = self.duration_ranges_ms[kind.value]
        return int(low), int(high)

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load configuration from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        defaults = cls()
        catalog = Catalog()
        if "search_engines" in data:
            catalog.search_engines = [
                SearchEngine(
                    id=e["id"],
                    name=e.get("name", e["id"]),
                    url_template=e["url"],
                    weight=e.get("weight", 1),
                )
                for e in data["search_engines"]
            ]
        if "sites" in data:
            catalog.sites = {k: list(v) for k, v in data["sites"].items()}
        if "ad_sites" in data:
            catalog.ad_sites = list(data["ad_sites"])
        if "search_terms" in data:
            catalog.search_terms = list(data["search_terms"])

        return cls(
            state_path=data.get("state_path", defaults.state_path),
            tick_period_seconds=data.get("tick_period_seconds", defaults.tick_period_seconds),
            grace_ms=data.get("grace_ms", defaults.grace_ms),
            handoff_retry_delay_ms=data.get(
                "handoff_retry_delay_ms", defaults.handoff_retry_delay_ms
            ),
            log_capacity=data.get("log_capacity", defaults.log_capacity),
            fallback_bytes=data.get("fallback_bytes", defaults.fallback_bytes),
            hourly_buckets=data.get("hourly_buckets", defaults.hourly_buckets),
            daily_buckets=data.get("daily_buckets", defaults.daily_buckets),
            timezone=data.get("timezone", defaults.timezone),
            headless=data.get("headless", defaults.headless),
            control_host=data.get("control_host", defaults.control_host),
            control_port=data.get("control_port", defaults.control_port),
            intensity_levels={**defaults.intensity_levels, **data.get("intensity_levels", {})},
            duration_ranges_ms={
                **defaults.duration_ranges_ms,
                **data.get("duration_ranges_ms", {}),
            },
            default_task_weights={
                **defaults.default_task_weights,
                **data.get("task_weights", {}),
            },
            catalog=catalog,
        )

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment or default path."""
        config_path = os.environ.get("CONFIG_PATH", "/config/config.yaml")

        if os.path.exists(config_path):
            config = cls.from_yaml(config_path)
        else:
            config = cls()

        # State location is usually a mounted volume, so allow overriding it alone
        config.state_path = os.environ.get("STATE_PATH", config.state_path)
        return config
