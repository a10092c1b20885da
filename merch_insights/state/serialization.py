"""
State Blob Serialization

One JSON document holding everything needed to rebuild the engine without
re-parsing uploads: rows and catalog, settings, interaction state and the
last computed analytics state.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from merch_insights.domain import AnalyticsState, AppSettings
from merch_insights.errors import SyncError
from merch_insights.ingestion.row_store import RowStore
from merch_insights.state.interaction import InteractionState

STATE_VERSION = 1


@dataclass
class StateSnapshot:
    store: RowStore = field(default_factory=RowStore)
    settings: AppSettings = field(default_factory=AppSettings)
    interaction: InteractionState = field(default_factory=InteractionState)
    analytics: Optional[AnalyticsState] = None
    saved_at: Optional[datetime] = None


def snapshot_to_dict(snapshot: StateSnapshot) -> Dict[str, Any]:
    return {
        "version": STATE_VERSION,
        "saved_at": snapshot.saved_at.isoformat() if snapshot.saved_at else None,
        "rows": snapshot.store.to_dict(),
        "settings": snapshot.settings.model_dump(mode="json", by_alias=True),
        "interaction": snapshot.interaction.to_dict(),
        "analytics": snapshot.analytics.model_dump(mode="json") if snapshot.analytics else None,
    }


def snapshot_from_dict(data: Dict[str, Any]) -> StateSnapshot:
    """
    Rebuild a snapshot.

    Raises:
        SyncError: when the document is not a valid state blob
    """
    if not isinstance(data, dict):
        raise SyncError("State blob is not an object")

    version = data.get("version")
    if version != STATE_VERSION:
        raise SyncError(
            f"Unsupported state blob version {version}",
            details={"expected": STATE_VERSION, "found": version},
        )

    try:
        return StateSnapshot(
            store=RowStore.from_dict(data.get("rows") or {}),
            settings=AppSettings.model_validate(data.get("settings") or {}),
            interaction=InteractionState.from_dict(data.get("interaction") or {}),
            analytics=(
                AnalyticsState.model_validate(data["analytics"]) if data.get("analytics") else None
            ),
            saved_at=datetime.fromisoformat(data["saved_at"]) if data.get("saved_at") else None,
        )
    except (PydanticValidationError, KeyError, TypeError, ValueError) as e:
        raise SyncError(f"State blob is invalid: {e}") from e


def encode_snapshot(snapshot: StateSnapshot) -> str:
    return json.dumps(snapshot_to_dict(snapshot), ensure_ascii=False, separators=(",", ":"))


def decode_snapshot(payload) -> StateSnapshot:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise SyncError(f"State blob is not valid JSON: {e}") from e
    return snapshot_from_dict(data)
