from datetime import datetime
from pydantic import BaseModel


class AlertResponse(BaseModel):
    id: int
    device_id: str
    type: str
    message: str | None = None
    severity: str
    active: bool
    created_at: datetime
    resolved_at: datetime | None = None

    model_config = {"from_attributes": True}
