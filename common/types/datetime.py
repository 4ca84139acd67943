from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic.functional_serializers import PlainSerializer


def utc_now() -> datetime:
    """tz-aware 현재 UTC 시각."""
    return datetime.now(timezone.utc)


def serialize_datetime_to_utc_iso8601(value: datetime) -> str:
    """모든 datetime을 UTC 기준 ISO8601(+타임존) 문자열로 직렬화한다."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


UtcDateTime = Annotated[
    datetime,
    PlainSerializer(
        serialize_datetime_to_utc_iso8601,
        return_type=str,
        when_used="json",
    ),
]

# resolved_at, ends_at 처럼 아직 값이 없을 수 있는 시각 필드용
OptionalUtcDateTime = Optional[UtcDateTime]
