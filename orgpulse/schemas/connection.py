from datetime import datetime
from uuid import UUID

from pydantic import Field

from orgpulse.schemas.billing import CamelModel


class ConnectionCreate(CamelModel):
    supabase_url: str | None = Field(default=None, max_length=2048)
    service_key: str | None = None
    connection_name: str | None = Field(default=None, max_length=255)


class ConnectionResponse(CamelModel):
    id: UUID
    user_id: str
    supabase_url: str
    connection_name: str
    created_at: datetime | None = None
