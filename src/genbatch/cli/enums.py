from enum import StrEnum


class OrderByFields(StrEnum):
    id = "id"
    status = "status"
    created_at = "created_at"
    updated_at = "updated_at"


class StatusFilter(StrEnum):
    pending = "pending"
    submitted = "submitted"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    timeout = "timeout"
    canceled = "canceled"
