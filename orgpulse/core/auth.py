import jwt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from orgpulse.core.config import settings
from orgpulse.core.database import get_db
from orgpulse.core.encryption import decrypt
from orgpulse.core.errors import AuthenticationError, ConnectionNotFoundError
from orgpulse.repositories.activity_repository import SupabaseActivityRepository
from orgpulse.repositories.connection_repository import ConnectionRepository


def verify_access_token(token: str) -> str:
    """Validate a hosted identity provider JWT and return its subject (user id)."""
    if not settings.SUPABASE_JWT_SECRET:
        raise AuthenticationError("Unauthorized")
    try:
        claims = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except jwt.InvalidTokenError:
        raise AuthenticationError("Unauthorized") from None
    subject = claims.get("sub")
    if not subject:
        raise AuthenticationError("Unauthorized")
    return str(subject)


def get_current_user(request: Request) -> str:
    """Extract and verify the bearer token from the Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise AuthenticationError("Missing authorization token")

    token = auth_header[7:]
    if not token:
        raise AuthenticationError("Missing authorization token")

    return verify_access_token(token)


def get_activity_source(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SupabaseActivityRepository:
    """Build a client for the caller's stored customer database connection."""
    connection = ConnectionRepository(db).get_by_user(user_id)
    if connection is None:
        raise ConnectionNotFoundError("No connection found")

    service_key = decrypt(str(connection.encrypted_key))
    return SupabaseActivityRepository(
        base_url=str(connection.supabase_url),
        api_key=service_key,
        timeout=settings.ACTIVITY_FETCH_TIMEOUT,
    )
