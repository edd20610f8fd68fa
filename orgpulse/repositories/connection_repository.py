"""Stored customer-database connections."""

from sqlalchemy.orm import Session

from orgpulse.models.user_connection import UserConnection

DEFAULT_CONNECTION_NAME = "My Supabase"


class ConnectionRepository:
    """Repository for UserConnection model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: str) -> UserConnection | None:
        return self.db.query(UserConnection).filter(UserConnection.user_id == user_id).first()

    def replace(
        self,
        user_id: str,
        supabase_url: str,
        encrypted_key: str,
        connection_name: str | None = None,
    ) -> UserConnection:
        """Delete any existing connection for the user and store a new one."""
        self.db.query(UserConnection).filter(UserConnection.user_id == user_id).delete()
        connection = UserConnection(
            user_id=user_id,
            supabase_url=supabase_url,
            encrypted_key=encrypted_key,
            connection_name=connection_name or DEFAULT_CONNECTION_NAME,
        )
        self.db.add(connection)
        self.db.commit()
        self.db.refresh(connection)
        return connection

    def delete_by_user(self, user_id: str) -> bool:
        deleted = self.db.query(UserConnection).filter(UserConnection.user_id == user_id).delete()
        self.db.commit()
        return deleted > 0
