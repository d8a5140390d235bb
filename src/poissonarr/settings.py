"""User settings read from the state store, with defaults when absent."""

from dataclasses import dataclass
from typing import Any

import structlog

from . import store as keys
from .config import Config
from .models import Intensity
from .store import StateStore

logger = structlog.get_logger()


@dataclass
class GenerationSettings:
    """Snapshot of the settings task generation depends on."""
    engines: dict[str, dict[str, Any]]
    task_weights: dict[str, float]
    categories: dict[str, bool]


def is_enabled(value: Any) -> bool:
    """Category and engine entries may be a bare flag or ``{enabled, weight}``."""
    if isinstance(value, dict):
        return bool(value.get("enabled"))
    return bool(value)


class SettingsRepository:
    """Typed accessors over the persisted settings keys."""

    def __init__(self, state: StateStore, config: Config):
        self.state = state
        self.config = config

    async def get_intensity(self) -> str:
        intensity = await self.state.get(keys.INTENSITY, Intensity.MEDIUM.value)
        if intensity not in self.config.intensity_levels:
            logger.warning("unknown_intensity", intensity=intensity)
            return Intensity.MEDIUM.value
        return intensity

    async def set_intensity(self, intensity: str) -> None:
        if intensity not in self.config.intensity_levels:
            raise ValueError(f"unknown intensity: {intensity}")
        await self.state.set(keys.INTENSITY, intensity)

    def default_engine_settings(self) -> dict[str, dict[str, Any]]:
        return {
            e.id: {"enabled": True, "weight": e.weight}
            for e in self.config.catalog.search_engines
        }

    async def get_engine_settings(self) -> dict[str, dict[str, Any]]:
        settings = await self.state.get(keys.ENGINE_SETTINGS)
        if not isinstance(settings, dict):
            return self.default_engine_settings()
        return settings

    async def set_engine_settings(self, value: dict[str, Any]) -> None:
        await self.state.set(keys.ENGINE_SETTINGS, value)

    async def get_task_weights(self) -> dict[str, float]:
        weights = await self.state.get(keys.TASK_WEIGHTS)
        if not isinstance(weights, dict):
            return dict(self.config.default_task_weights)
        return {**self.config.default_task_weights, **weights}

    async def set_task_weights(self, value: dict[str, float]) -> None:
        await self.state.set(keys.TASK_WEIGHTS, value)

    def default_category_settings(self) -> dict[str, bool]:
        return {category: True for category in self.config.catalog.categories}

    async def get_category_settings(self) -> dict[str, Any]:
        settings = await self.state.get(keys.CATEGORY_SETTINGS)
        if not isinstance(settings, dict):
            return self.default_category_settings()
        return settings

    async def set_category_settings(self, value: dict[str, Any]) -> None:
        await self.state.set(keys.CATEGORY_SETTINGS, value)

    async def snapshot(self) -> GenerationSettings:
        categories = await self.get_category_settings()
        return GenerationSettings(
            engines=await self.get_engine_settings(),
            task_weights=await self.get_task_weights(),
            categories={k: is_enabled(v) for k, v in categories.items()},
        )
