from typing import Any

from pydantic import BaseModel


class EventResponse(BaseModel):
    id: str
    job_id: str
    level: str
    message: str
    meta: dict[str, Any] | None
    created_at: str
