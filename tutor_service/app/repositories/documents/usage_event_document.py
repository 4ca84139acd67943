"""사용 이벤트 MongoDB 도큐먼트.

이미지/오디오 원본은 저장하지 않고 attachment 서브 도큐먼트에 참조 정보만 남긴다.
"""

from __future__ import annotations

from pydantic import BaseModel

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.usage import AttachmentRef, OperationKind, UsageEvent, UsageStatus


class AttachmentDocument(BaseModel):
    mime_type: str
    size_bytes: int
    sha256: str


class UsageEventDocument(BaseDocument):
    """MongoDB usage_events 컬렉션 도큐먼트 모델."""

    account_id: str
    kind: str
    status: str
    declared_cost: int
    actual_cost: int | None = None
    measured_cost: int | None = None
    session_id: str | None = None
    input_text: str = ""
    attachment: AttachmentDocument | None = None
    output: str | None = None
    model: str | None = None
    error_code: str | None = None
    resolved_at: MongoDateTime | None = None

    @classmethod
    def from_domain(cls, event: UsageEvent) -> "UsageEventDocument":
        data = build_document_data_from_domain(event)
        return cls.model_validate(data)

    def to_domain(self) -> UsageEvent:
        attachment = None
        if self.attachment is not None:
            attachment = AttachmentRef(
                mime_type=self.attachment.mime_type,
                size_bytes=self.attachment.size_bytes,
                sha256=self.attachment.sha256,
            )
        return UsageEvent(
            id=from_object_id(self.id),
            account_id=self.account_id,
            kind=OperationKind(self.kind),
            status=UsageStatus(self.status),
            declared_cost=self.declared_cost,
            actual_cost=self.actual_cost,
            measured_cost=self.measured_cost,
            session_id=self.session_id,
            input_text=self.input_text,
            attachment=attachment,
            output=self.output,
            model=self.model,
            error_code=self.error_code,
            created_at=self.created_at,
            resolved_at=self.resolved_at,
            updated_at=self.updated_at,
        )
