"""
Dead Letter Queue schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, Optional
from backend.app.models.dlq import DLQStatus


class DLQItemResponse(BaseModel):
    id: int
    task_name: str
    short_id: Optional[str]
    error_message: str
    payload: Optional[Dict[str, Any]]
    status: DLQStatus
    retry_count: int
    created_at: datetime
    last_retry_at: Optional[datetime]

    class Config:
        from_attributes = True
