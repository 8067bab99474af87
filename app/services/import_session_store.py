import time
import asyncio
import logging
from typing import Dict, List
from threading import Lock

from app.models.policy_import_model import ImportSession, ImportStep

logger = logging.getLogger(__name__)


class ImportSessionError(Exception):
    """Operation not allowed in the session's current state."""
    pass


class ImportSessionNotFoundError(ImportSessionError):
    """Unknown session (or item) for this tenant."""
    pass


class ImportSessionStore:
    """
    Singleton store for import sessions.

    Thread-safe in-memory storage with automatic cleanup.
    Sessions are only visible to the tenant that created them.
    """

    _instance = None
    _lock = Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(ImportSessionStore, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._store: Dict[str, ImportSession] = {}
        self._store_lock = Lock()
        self._initialized = True

        logger.info("✅ Import Session Store initialized")

    def create(self, user_id: str) -> ImportSession:
        session = ImportSession(user_id=user_id)
        with self._store_lock:
            self._store[session.id] = session

        logger.info(f"📊 Import session created: {session.id} (user {user_id})")
        return session

    def get(self, session_id: str, user_id: str) -> ImportSession:
        """
        Get a session of the tenant.

        Raises:
            ImportSessionNotFoundError: unknown ID or owned by another tenant
        """
        with self._store_lock:
            session = self._store.get(session_id)

        if session is None or session.user_id != user_id:
            raise ImportSessionNotFoundError(f"Sessão de importação não encontrada: {session_id}")
        return session

    def remove(self, session_id: str) -> None:
        with self._store_lock:
            self._store.pop(session_id, None)

        logger.debug(f"🧹 Removed import session: {session_id}")

    def clear(self) -> None:
        with self._store_lock:
            self._store.clear()

    def cleanup_old_entries(self, max_age_seconds: int = 3600) -> int:
        """
        Remove stale sessions.

        Args:
            max_age_seconds: Maximum idle time before cleanup (default: 1 hour)

        Returns:
            Number of sessions removed
        """
        current_time = time.time()
        expired: List[str] = []

        with self._store_lock:
            for session_id, session in self._store.items():
                age = current_time - session.last_update

                # Completed sessions only keep their summary for 5 minutes
                if age > max_age_seconds or (session.step == ImportStep.COMPLETE and age > 300):
                    expired.append(session_id)

            for session_id in expired:
                self._store.pop(session_id, None)

        if expired:
            logger.info(f"🧹 Cleaned up {len(expired)} old import sessions")

        return len(expired)


# Global singleton instance
import_session_store = ImportSessionStore()


async def start_cleanup_task(interval_seconds: int = 300):
    """
    Start background cleanup task.

    Args:
        interval_seconds: How often to run cleanup (default: 5 minutes)
    """
    logger.info(f"🔄 Starting import session cleanup task (interval: {interval_seconds}s)")

    while True:
        try:
            await asyncio.sleep(interval_seconds)
            import_session_store.cleanup_old_entries()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Cleanup task error: {e}")
