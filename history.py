"""
Conversation history storage.

Each processed message is stored as one row of the `conversations` table
holding the user's message and the full reply. For the backend, history is
flattened into alternating `user`/`model` entries.
"""

from typing import List

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession, sessionmaker

from models import ConversationTurn, HistoryEntry
from models.db_models import Base, ConversationRecord
from logger import get_logger

logger = get_logger(__name__)


class HistoryStoreError(Exception):
    """Raised when conversation history cannot be read or written."""
    pass


class HistoryStore:
    """Reads and appends conversation turns."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False)

    def init_schema(self) -> None:
        """Create the conversations table if it does not exist."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise HistoryStoreError(f"Cannot create schema: {str(e)}") from e

    def get_history(self, user_id: str, limit: int = 10) -> List[HistoryEntry]:
        """
        Most recent history entries for a user, oldest first.

        Each stored turn yields a `user` entry followed by a `model` entry;
        the newest `limit` entries are returned, so the sequence may start
        with a `model` entry.

        Raises:
            HistoryStoreError: If the database cannot be read
        """
        if limit <= 0:
            return []

        # Each turn yields up to two entries
        row_limit = (limit + 1) // 2 + 1
        statement = (
            select(ConversationRecord)
            .where(ConversationRecord.user_id == user_id)
            .order_by(ConversationRecord.created_at.desc(), ConversationRecord.id.desc())
            .limit(row_limit)
        )

        try:
            with self._session_factory() as session:
                rows = session.execute(statement).scalars().all()
                newest_first = []
                for row in rows:
                    if row.bot_response is not None:
                        newest_first.append(HistoryEntry(role="model", text=row.bot_response))
                    if row.message is not None:
                        newest_first.append(HistoryEntry(role="user", text=row.message))
        except SQLAlchemyError as e:
            raise HistoryStoreError(f"Cannot read history for {user_id}: {str(e)}") from e

        entries = newest_first[:limit]
        entries.reverse()
        return entries

    def save_turn(self, user_id: str, user_message: str, bot_response: str) -> ConversationTurn:
        """
        Append one turn.

        Returns:
            The stored turn with its timestamp

        Raises:
            HistoryStoreError: If the row cannot be written
        """
        record = ConversationRecord(
            user_id=user_id,
            message=user_message,
            bot_response=bot_response
        )
        session: DBSession = self._session_factory()
        try:
            session.add(record)
            session.commit()
            turn = ConversationTurn(
                user_id=user_id,
                user_message=user_message,
                bot_response=bot_response,
                timestamp=record.created_at
            )
        except SQLAlchemyError as e:
            session.rollback()
            raise HistoryStoreError(f"Cannot save conversation for {user_id}: {str(e)}") from e
        finally:
            session.close()

        logger.info("Conversation saved", user_id=user_id)
        return turn

    def count_turns(self, user_id: str) -> int:
        """Number of stored turns for a user."""
        statement = select(func.count(ConversationRecord.id)).where(ConversationRecord.user_id == user_id)
        try:
            with self._session_factory() as session:
                return session.scalar(statement) or 0
        except SQLAlchemyError as e:
            raise HistoryStoreError(f"Cannot count turns for {user_id}: {str(e)}") from e
