"""Connect and disconnect the caller's customer database."""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orgpulse.core.auth import get_current_user
from orgpulse.core.config import settings
from orgpulse.core.database import get_db
from orgpulse.core.encryption import encrypt
from orgpulse.core.errors import ClientError, DataFetchError
from orgpulse.repositories.activity_repository import SupabaseActivityRepository
from orgpulse.repositories.connection_repository import ConnectionRepository
from orgpulse.schemas.connection import ConnectionCreate, ConnectionResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/connect",
    summary="Store a customer database connection",
    responses={
        400: {"description": "Missing fields or connection test failed"},
        401: {"description": "Unauthorized"},
    },
)
async def connect(
    data: ConnectionCreate,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Verify the connection against ``profiles``, then replace any stored one."""
    if not data.supabase_url or not data.service_key:
        raise ClientError("Missing required fields")

    client = SupabaseActivityRepository(
        base_url=data.supabase_url,
        api_key=data.service_key,
        timeout=settings.ACTIVITY_FETCH_TIMEOUT,
    )
    try:
        await client.check_connection()
    except DataFetchError as exc:
        logger.warning("Connection test failed for user %s: %s", user_id, exc.message)
        raise ClientError(f"Connection test failed: {exc.message}") from exc

    connection = ConnectionRepository(db).replace(
        user_id=user_id,
        supabase_url=data.supabase_url,
        encrypted_key=encrypt(data.service_key),
        connection_name=data.connection_name,
    )
    logger.info("Stored connection %s for user %s", connection.id, user_id)
    return {"connection": ConnectionResponse.model_validate(connection).model_dump(mode="json", by_alias=True)}


@router.post(
    "/disconnect",
    summary="Remove the stored customer database connection",
    responses={401: {"description": "Unauthorized"}},
)
async def disconnect(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    ConnectionRepository(db).delete_by_user(user_id)
    return {"success": True}
