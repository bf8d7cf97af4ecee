import logging
import sqlite3

from dotenv import load_dotenv

from library_tracker.config import settings

# Make sure .env is loaded even when this module is imported before config.
load_dotenv()

logger = logging.getLogger(__name__)

# Process-wide database file. Tests and the CLI override it before the first
# connection is opened.
DATABASE_FILE = settings.database_file


def get_db_connection() -> sqlite3.Connection:
    """Open a new connection to the SQLite database."""
    conn = sqlite3.connect(DATABASE_FILE, timeout=10)
    conn.row_factory = sqlite3.Row
    return conn


def create_tables() -> None:
    """Create the users and books tables if they do not exist yet."""
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                username TEXT UNIQUE NOT NULL,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                first_name TEXT NOT NULL,
                last_name TEXT NOT NULL,
                avatar TEXT,
                theme TEXT NOT NULL DEFAULT 'light',
                default_book_status TEXT NOT NULL DEFAULT 'To Read',
                is_admin INTEGER NOT NULL DEFAULT 0,
                stats_total_books INTEGER NOT NULL DEFAULT 0,
                stats_books_read INTEGER NOT NULL DEFAULT 0,
                stats_currently_reading INTEGER NOT NULL DEFAULT 0,
                stats_to_read INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                genre TEXT,
                status TEXT NOT NULL DEFAULT 'To Read'
                    CHECK(status IN ('To Read', 'Reading', 'Read')),
                description TEXT,
                isbn TEXT,
                published_date TEXT,
                page_count INTEGER CHECK(page_count IS NULL OR (page_count >= 1 AND page_count <= 50000)),
                rating INTEGER CHECK(rating IS NULL OR (rating >= 1 AND rating <= 5)),
                notes TEXT,
                cover_image TEXT,
                tags TEXT NOT NULL DEFAULT '[]',  -- JSON array
                series_name TEXT,
                series_number INTEGER,
                language TEXT,
                format TEXT,
                purchase_price REAL,
                purchase_date TEXT,
                location TEXT,
                date_started TEXT,
                date_finished TEXT,
                reading_duration INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_user_status ON books(user_id, status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_user_created_at ON books(user_id, created_at DESC)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_user_genre ON books(user_id, genre)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_user_author ON books(user_id, author)")
        conn.commit()
    finally:
        conn.close()


def initialize_database() -> None:
    """Prepare the database for use. Safe to call any number of times."""
    create_tables()
    logger.debug(f"Database ready at {DATABASE_FILE}")


def check_connection() -> bool:
    """Run a trivial query; used by the health endpoint."""
    try:
        conn = get_db_connection()
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
        return True
    except sqlite3.Error as e:
        logger.error(f"Database health check failed: {e}")
        return False
