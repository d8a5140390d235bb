"""
Command Handler

Action-keyed request/response protocol between the engine and its UI
client. Commands answer ``{"ok": True}``, queries answer their payload, and
anything that goes wrong answers ``{"error": "..."}``.
"""

from numbers import Number
from typing import Any, Awaitable, Callable

import structlog

from .engine import EngineController
from .errors import PoissonarrError, UnknownActionError
from .generator import TASK_KINDS
from .settings import is_enabled

logger = structlog.get_logger()

OK = {"ok": True}


def _require_mapping(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be a mapping")
    return value


def _enabled_names(value: dict[str, Any]) -> str:
    names = [name for name, setting in value.items() if is_enabled(setting)]
    return ", ".join(names) or "none"


class CommandHandler:
    """Dispatches protocol messages to the engine."""

    def __init__(self, engine: EngineController):
        self.engine = engine
        self._handlers: dict[str, Callable[[Any], Awaitable[dict[str, Any]]]] = {
            "start": self.start,
            "stop": self.stop,
            "set-intensity": self.set_intensity,
            "set-engines": self.set_engines,
            "set-task-weights": self.set_task_weights,
            "set-categories": self.set_categories,
            "get-status": self.get_status,
            "get-logs": self.get_logs,
            "get-bandwidth": self.get_bandwidth,
            "get-settings": self.get_settings,
            "clear-logs": self.clear_logs,
        }

    @property
    def actions(self) -> list[str]:
        return list(self._handlers)

    async def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        action = message.get("action") if isinstance(message, dict) else None
        try:
            handler = self._handlers.get(action)
            if handler is None:
                raise UnknownActionError("unknown action")
            await self.engine.reconcile()
            return await handler(message.get("value"))
        except (PoissonarrError, ValueError) as e:
            logger.warning("command_failed", action=action, error=str(e))
            return {"error": str(e)}

    async def start(self, value: Any) -> dict[str, Any]:
        await self.engine.start()
        return OK

    async def stop(self, value: Any) -> dict[str, Any]:
        await self.engine.stop()
        return OK

    async def set_intensity(self, value: Any) -> dict[str, Any]:
        if not isinstance(value, str):
            raise ValueError("intensity must be a string")
        await self.engine.set_intensity(value)
        return OK

    async def set_engines(self, value: Any) -> dict[str, Any]:
        engines = _require_mapping(value, "engine settings")
        for engine_id, setting in engines.items():
            setting = _require_mapping(setting, f"engine {engine_id}")
            weight = setting.get("weight")
            if weight is not None and (not isinstance(weight, Number) or weight < 0):
                raise ValueError(f"engine {engine_id} weight must be a non-negative number")
        await self.engine.settings.set_engine_settings(engines)
        await self.engine.event_log.system(f"Search engines updated: {_enabled_names(engines)}")
        return OK

    async def set_task_weights(self, value: Any) -> dict[str, Any]:
        weights = _require_mapping(value, "task weights")
        known = {kind.value for kind in TASK_KINDS}
        for kind, weight in weights.items():
            if kind not in known:
                raise ValueError(f"unknown task kind: {kind}")
            if not isinstance(weight, Number) or weight < 0:
                raise ValueError(f"weight for {kind} must be a non-negative number")
        await self.engine.settings.set_task_weights(weights)
        merged = await self.engine.settings.get_task_weights()
        mix = ", ".join(f"{kind.value}={merged.get(kind.value, 0)}" for kind in TASK_KINDS)
        await self.engine.event_log.system(f"Task mix updated: {mix}")
        return OK

    async def set_categories(self, value: Any) -> dict[str, Any]:
        categories = _require_mapping(value, "category settings")
        await self.engine.settings.set_category_settings(categories)
        await self.engine.event_log.system(
            f"Site categories updated: {_enabled_names(categories)}"
        )
        return OK

    async def get_status(self, value: Any) -> dict[str, Any]:
        return await self.engine.get_status()

    async def get_logs(self, value: Any) -> dict[str, Any]:
        return {"entries": await self.engine.event_log.raw_entries()}

    async def get_bandwidth(self, value: Any) -> dict[str, Any]:
        return {
            "hourly": await self.engine.bandwidth.hourly(),
            "daily": await self.engine.bandwidth.daily(),
            "session": self.engine.bandwidth.session_bytes,
        }

    async def get_settings(self, value: Any) -> dict[str, Any]:
        settings = self.engine.settings
        return {
            "engines": await settings.get_engine_settings(),
            "taskWeights": await settings.get_task_weights(),
            "categories": await settings.get_category_settings(),
        }

    async def clear_logs(self, value: Any) -> dict[str, Any]:
        await self.engine.event_log.clear()
        return OK
