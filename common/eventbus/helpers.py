from __future__ import annotations

import time
from typing import Any, Mapping

from .core import Event


def new_json_event(
    payload: Mapping[str, Any],
    *,
    event_id: str | None = None,
) -> Event:
    """JSON 페이로드를 Event 로 감싼다.

    id가 비어 있으면 고해상도 타임스탬프 기반 문자열을 생성한다.
    """
    if not event_id:
        event_id = str(time.time_ns())

    return Event(id=event_id, payload=dict(payload))
