"""
JSON output for Time Capsule.

Structured output for programmatic consumption of capsule status and opened
payloads. Times are emitted both as epoch seconds and ISO strings.
"""

import json
from datetime import UTC, datetime
from typing import Any

from timecapsule.schema import CapsuleMeta, DecryptedPayload
from timecapsule.service import CapsuleStatus


def _iso(epoch_seconds: int) -> str:
    return datetime.fromtimestamp(epoch_seconds, UTC).isoformat()


def meta_dict(meta: CapsuleMeta) -> dict[str, Any]:
    """Public metadata as a dictionary."""
    return {
        "id": meta.id,
        "sender": meta.sender,
        "receiver": meta.receiver,
        "unlock_time": meta.unlock_time,
        "unlock_time_iso": _iso(meta.unlock_time),
        "content_type": meta.content_type,
    }


def status_dict(status: CapsuleStatus) -> dict[str, Any]:
    """Capsule status as a dictionary."""
    return {
        **meta_dict(status.meta),
        "checked_at": status.now,
        "is_unlocked": status.is_unlocked,
        "is_authorized": status.is_authorized,
        "seconds_remaining": status.seconds_remaining,
    }


def payload_dict(capsule_id: int, payload: DecryptedPayload) -> dict[str, Any]:
    """Opened payload as a dictionary."""
    return {
        "id": capsule_id,
        "text": payload.text,
        "files": [f.model_dump() for f in payload.files],
        "timestamp": payload.timestamp,
    }


def to_json(data: Any, indent: int = 2) -> str:
    """Serialize report data."""
    return json.dumps(data, indent=indent, default=str)
