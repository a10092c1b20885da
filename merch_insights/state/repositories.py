"""
State Repositories

Operator settings and notification interaction state on top of a
key-value store.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from merch_insights.domain import AppSettings, NotificationKey
from merch_insights.errors import ValidationError
from merch_insights.state.interaction import InteractionState
from merch_insights.state.store import KeyValueStore

logger = structlog.get_logger(__name__)

SETTINGS_KEY = "settings"
INTERACTION_KEY = "notification_state"


def _error_details(exc: PydanticValidationError) -> list:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


class SettingsManager:
    """
    Validated, persisted operator settings.

    Example:
        manager = SettingsManager(store)
        await manager.load()
        await manager.update({"targetStockDays": 45})
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._current = AppSettings()
        self.persisted = False

    @property
    def current(self) -> AppSettings:
        return self._current

    async def load(self) -> AppSettings:
        """Load persisted settings; invalid or missing documents fall back to defaults"""
        raw = await self._store.get(SETTINGS_KEY)
        if raw:
            try:
                self._current = AppSettings.model_validate(raw)
                self.persisted = True
            except PydanticValidationError as e:
                logger.warning("Persisted settings invalid, using defaults", errors=_error_details(e))
                self._current = AppSettings()
        return self._current

    def _normalize(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        fields = AppSettings.model_fields
        aliases = {to_camel(name) for name in fields}
        normalized = {}
        unknown = []
        for key, value in changes.items():
            if key in aliases:
                normalized[key] = value
            elif key in fields:
                normalized[to_camel(key)] = value
            else:
                unknown.append(key)
        if unknown:
            raise ValidationError(
                "Unknown settings",
                details={"errors": [{"field": key, "message": "Unknown setting"} for key in unknown]},
            )
        return normalized

    async def update(self, changes: Dict[str, Any]) -> AppSettings:
        """
        Validate and persist a partial settings change.

        Raises:
            ValidationError: when any value is invalid; nothing is persisted
                and the current settings are kept
        """
        merged = {**self._current.model_dump(mode="json", by_alias=True), **self._normalize(changes)}
        try:
            updated = AppSettings.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError("Invalid settings", details={"errors": _error_details(e)}) from e

        await self._store.set(SETTINGS_KEY, updated.model_dump(mode="json", by_alias=True))
        self._current = updated
        self.persisted = True
        logger.info("Settings updated", changed=sorted(changes))
        return updated

    async def replace(self, settings: AppSettings) -> AppSettings:
        await self._store.set(SETTINGS_KEY, settings.model_dump(mode="json", by_alias=True))
        self._current = settings
        self.persisted = True
        return settings


class InteractionRepository:
    """
    Read/dismiss state merged by set union against the persisted copy.

    Every update reloads the persisted document, unions it with the local
    state, applies the change and saves, so concurrent writers never drop
    each other's keys.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._state = InteractionState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> InteractionState:
        return self._state

    async def load(self) -> InteractionState:
        persisted = await self._store.get(INTERACTION_KEY)
        self._state = InteractionState.from_dict(persisted) if persisted else InteractionState()
        return self._state

    async def _update(self, mutate: Optional[Callable[[InteractionState], Any]] = None) -> InteractionState:
        async with self._lock:
            raw = await self._store.get(INTERACTION_KEY)
            persisted = InteractionState.from_dict(raw) if raw else InteractionState()
            merged = persisted.merge(self._state)
            if mutate is not None:
                mutate(merged)
            await self._store.set(INTERACTION_KEY, merged.to_dict())
            self._state = merged
            return merged

    async def mark_read(self, keys: Iterable[NotificationKey], at: datetime) -> InteractionState:
        keys = list(keys)
        state = await self._update(lambda s: s.mark_read(keys, at))
        logger.info("Notifications marked read", count=len(keys))
        return state

    async def dismiss(self, keys: Iterable[NotificationKey]) -> InteractionState:
        keys = list(keys)
        state = await self._update(lambda s: s.dismiss(keys))
        logger.info("Notifications dismissed", count=len(keys))
        return state

    async def merge_in(self, other: InteractionState) -> InteractionState:
        """Union a restored state into the persisted one"""
        return await self._update(lambda s: s.absorb(other))
