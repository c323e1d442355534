"""
Transport Tracker - Database Module
SQLite storage for users, work sessions and the admin edit history.
"""

import os
import sqlite3
from datetime import datetime, date, timedelta
from contextlib import contextmanager
from typing import Optional, Dict, List, Any

from tracker.clock import get_local_date, get_local_now
from tracker.errors import StorageError
from tracker.metrics import with_totals
from tracker.models import AuditEntry, Session, SessionStatus

# Database configuration
BASE_DIR = os.getenv('BASE_DIR', os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DATABASE_DIR = os.path.join(BASE_DIR, "database")  # Python module directory
DATA_DIR = os.getenv('DATA_DIR', os.path.join(BASE_DIR, 'data'))
os.makedirs(DATA_DIR, exist_ok=True)
DB_FILE = os.path.join(DATA_DIR, "tracker.db")
SCHEMA_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "schema.sql")

SESSION_COLUMNS = [
    'user_id', 'session_date', 'start_time', 'end_time', 'status', 'route_number',
    'positive_deliveries', 'negative_deliveries', 'positive_pickups', 'negative_pickups',
    'delivery_comments', 'pickup_comments', 'start_km', 'end_km',
    'deliveries', 'pickups', 'total_km', 'breaks',
]


# Register adapters and converters for Python 3.12+ compatibility
def adapt_datetime(val):
    """Adapt datetime.datetime to ISO format string."""
    return val.isoformat(" ")

def adapt_date(val):
    """Adapt datetime.date to ISO format string."""
    return val.isoformat()

def convert_datetime(val):
    """Convert ISO format string to datetime.datetime."""
    return datetime.fromisoformat(val.decode())

def convert_date(val):
    """Convert ISO format string to datetime.date."""
    return date.fromisoformat(val.decode())

sqlite3.register_adapter(datetime, adapt_datetime)
sqlite3.register_adapter(date, adapt_date)
sqlite3.register_converter("TIMESTAMP", convert_datetime)
sqlite3.register_converter("DATE", convert_date)


@contextmanager
def get_connection(timeout: int = 30):
    """Context manager for database connections."""
    conn = sqlite3.connect(DB_FILE, detect_types=sqlite3.PARSE_DECLTYPES, timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")  # Enable concurrent access
    conn.execute(f"PRAGMA busy_timeout = {timeout * 1000}")  # Convert to milliseconds
    conn.execute("PRAGMA synchronous = NORMAL")
    try:
        yield conn
        conn.commit()
    except Exception as e:
        conn.rollback()
        raise e
    finally:
        conn.close()


def init_database():
    """Initialize the database with schema."""
    os.makedirs(os.path.dirname(DB_FILE), exist_ok=True)

    with open(SCHEMA_FILE, 'r', encoding='utf-8') as f:
        schema_sql = f.read()

    with get_connection() as conn:
        conn.executescript(schema_sql)

    print(f"[DB] Database initialized: {DB_FILE}")
    return True


# ============================================
# USER OPERATIONS
# ============================================

def create_user(name: str, username: str, password_hash: str, role: str,
                mobile: str = None, email: str = None) -> int:
    """Create a user. Returns user ID."""
    with get_connection() as conn:
        cursor = conn.execute("""
            INSERT INTO users (name, username, password_hash, mobile, email, role)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (name, username, password_hash, mobile, email, role))
        return cursor.lastrowid


def get_user(user_id: int) -> Optional[Dict]:
    """Get user by ID."""
    with get_connection() as conn:
        cursor = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_user_by_username(username: str) -> Optional[Dict]:
    """Get user by username."""
    with get_connection() as conn:
        cursor = conn.execute("SELECT * FROM users WHERE username = ?", (username,))
        row = cursor.fetchone()
        return dict(row) if row else None


def list_users(role: str = None) -> List[Dict]:
    """List users (without password hashes), optionally by role."""
    query = "SELECT id, name, username, mobile, email, role, created_at FROM users"
    params = []
    if role:
        query += " WHERE role = ?"
        params.append(role)
    query += " ORDER BY name"

    with get_connection() as conn:
        cursor = conn.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]


# ============================================
# SESSION STORE
# ============================================

class SqliteSessionStore:
    """Session persistence used by the lifecycle service."""

    def get_session(self, session_id) -> Optional[Session]:
        try:
            with get_connection() as conn:
                cursor = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not load session {session_id}: {e}") from e
        return Session.from_record(dict(row)) if row else None

    def get_session_for_driver_on(self, driver_id, day: date) -> Optional[Session]:
        """The driver's session for a calendar date, whatever its status."""
        try:
            with get_connection() as conn:
                cursor = conn.execute("""
                    SELECT * FROM sessions
                    WHERE user_id = ? AND session_date = ?
                """, (driver_id, day))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not load session for driver {driver_id}: {e}") from e
        return Session.from_record(dict(row)) if row else None

    def load_open_session_for_driver_today(self, driver_id) -> Optional[Session]:
        """Today's session if it has not ended, else None."""
        session = self.get_session_for_driver_on(driver_id, get_local_date())
        if session is None or session.status == SessionStatus.ENDED:
            return None
        return session

    def save_session(self, session: Session) -> Session:
        """Insert a new session (temporary id) or update an existing one."""
        session = with_totals(session)
        record = session.to_record()
        values = [record[col] for col in SESSION_COLUMNS]

        try:
            with get_connection() as conn:
                if session.is_temporary:
                    placeholders = ', '.join('?' for _ in SESSION_COLUMNS)
                    cursor = conn.execute(
                        f"INSERT INTO sessions ({', '.join(SESSION_COLUMNS)}) VALUES ({placeholders})",
                        values
                    )
                    session_id = cursor.lastrowid
                else:
                    assignments = ', '.join(f"{col} = ?" for col in SESSION_COLUMNS)
                    cursor = conn.execute(
                        f"UPDATE sessions SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                        values + [session.id]
                    )
                    if cursor.rowcount == 0:
                        raise StorageError(f"Session {session.id} does not exist")
                    session_id = session.id

                cursor = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            print(f"[DB] Save session error: {e}")
            raise StorageError(f"Could not save session {session.id}: {e}") from e

        return Session.from_record(dict(row))

    def list_sessions(self, driver_id=None, start_date: date = None,
                      end_date: date = None) -> List[Session]:
        """Sessions ordered by date, optionally filtered by driver and date range."""
        query = "SELECT * FROM sessions WHERE 1 = 1"
        params = []
        if driver_id is not None:
            query += " AND user_id = ?"
            params.append(driver_id)
        if start_date:
            query += " AND session_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND session_date <= ?"
            params.append(end_date)
        query += " ORDER BY session_date DESC, user_id"

        try:
            with get_connection() as conn:
                cursor = conn.execute(query, params)
                return [Session.from_record(dict(row)) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageError(f"Could not list sessions: {e}") from e

    # ============================================
    # AUDIT LOG
    # ============================================

    def append_audit_entries(self, entries: List[AuditEntry]) -> None:
        if not entries:
            return
        try:
            with get_connection() as conn:
                conn.executemany("""
                    INSERT INTO session_edit_history
                        (session_id, edited_by, field_name, old_value, new_value, edited_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, [
                    (e.session_id, e.edited_by, e.field_name, e.old_value, e.new_value, e.edited_at)
                    for e in entries
                ])
        except sqlite3.Error as e:
            raise StorageError(f"Could not append audit entries: {e}") from e

    def get_session_history(self, session_id) -> List[Dict]:
        """Edit history for one session, newest first."""
        with get_connection() as conn:
            cursor = conn.execute("""
                SELECT h.*, u.name as editor_name, u.username as editor_username
                FROM session_edit_history h
                LEFT JOIN users u ON h.edited_by = u.id
                WHERE h.session_id = ?
                ORDER BY h.edited_at DESC, h.id DESC
            """, (session_id,))
            return [dict(row) for row in cursor.fetchall()]

    def get_audit_history(self, editor_id=None, start: datetime = None,
                          end: datetime = None, limit: int = 100) -> List[Dict]:
        """All edits with session and editor details, newest first."""
        query = """
            SELECT
                h.*,
                s.session_date,
                s.route_number,
                s.user_id as driver_id,
                d.name as driver_name,
                e.name as editor_name
            FROM session_edit_history h
            JOIN sessions s ON h.session_id = s.id
            LEFT JOIN users d ON s.user_id = d.id
            LEFT JOIN users e ON h.edited_by = e.id
            WHERE 1 = 1
        """
        params = []
        if editor_id is not None:
            query += " AND h.edited_by = ?"
            params.append(editor_id)
        if start:
            query += " AND h.edited_at >= ?"
            params.append(start)
        if end:
            query += " AND h.edited_at <= ?"
            params.append(end)
        query += " ORDER BY h.edited_at DESC, h.id DESC LIMIT ?"
        params.append(limit)

        with get_connection() as conn:
            cursor = conn.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def get_edit_statistics(self) -> Dict[str, Any]:
        """Total edits, edits in the last 7 days and edits per admin."""
        week_ago = get_local_now() - timedelta(days=7)
        with get_connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM session_edit_history").fetchone()[0]
            recent = conn.execute(
                "SELECT COUNT(*) FROM session_edit_history WHERE edited_at >= ?",
                (week_ago,)
            ).fetchone()[0]
            cursor = conn.execute("""
                SELECT h.edited_by, u.name, u.username, COUNT(*) as count
                FROM session_edit_history h
                LEFT JOIN users u ON h.edited_by = u.id
                GROUP BY h.edited_by
                ORDER BY count DESC
            """)
            per_admin = [dict(row) for row in cursor.fetchall()]

        return {
            'total_edits': total,
            'recent_edits': recent,
            'admin_edit_counts': per_admin,
            'last_updated': get_local_now().isoformat(),
        }


if __name__ == '__main__':
    # Initialize database when run directly
    print("Initializing Transport Tracker Database...")
    init_database()
    print("Done!")
