import json

import aiosqlite

from assignment_bot.config import settings

CREATE_COURSES = """
CREATE TABLE IF NOT EXISTS courses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    aliases_json TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_ASSIGNMENTS = """
CREATE TABLE IF NOT EXISTS assignments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    course_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    deadline TEXT,
    section_code TEXT,
    sender_id TEXT,
    origin_message_id TEXT NOT NULL,
    message_ids_json TEXT NOT NULL DEFAULT '[]',
    completed INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (course_id) REFERENCES courses(id),
    UNIQUE(origin_message_id, course_id, title)
)
"""

CREATE_SENDER_HISTORY = """
CREATE TABLE IF NOT EXISTS sender_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sender_id TEXT NOT NULL,
    course_id INTEGER NOT NULL,
    section_code TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    FOREIGN KEY (course_id) REFERENCES courses(id)
)
"""

CREATE_SENDER_HISTORY_INDEX = """
CREATE INDEX IF NOT EXISTS idx_sender_history_lookup
ON sender_history (sender_id, course_id)
"""

CREATE_PROCESSED_MESSAGES = """
CREATE TABLE IF NOT EXISTS processed_messages (
    message_id TEXT PRIMARY KEY,
    processed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

_DDL = [
    CREATE_COURSES,
    CREATE_ASSIGNMENTS,
    CREATE_SENDER_HISTORY,
    CREATE_SENDER_HISTORY_INDEX,
    CREATE_PROCESSED_MESSAGES,
]

# Courses of the monitored cohort, with the nicknames students actually type.
DEFAULT_COURSES: list[tuple[str, list[str]]] = [
    ("Pemrograman", ["pemrog", "prog"]),
    ("Struktur Data", ["strukdat", "sd"]),
    ("Rekayasa Perangkat Lunak", ["rpl"]),
    ("Organisasi dan Arsitektur Komputer", ["orkom", "oaak"]),
    ("Metode Kuantitatif", ["metkuan"]),
    ("Matematika Komputasi", ["matkom"]),
    ("Grafika Komputer dan Visualisasi", ["grafkom", "gkv"]),
    ("Desain Pengalaman Pengguna", ["user experience design", "uxd", "ux", "dpp"]),
]


async def init_db(db_path: str | None = None, seed: bool = True) -> None:
    """Create all tables and seed the course directory.

    Called once at server startup via FastAPI lifespan.
    """
    async with aiosqlite.connect(db_path or settings.db_path) as db:
        for stmt in _DDL:
            await db.execute(stmt)
        if seed:
            await db.executemany(
                "INSERT OR IGNORE INTO courses (name, aliases_json) VALUES (?, ?)",
                [(name, json.dumps(aliases)) for name, aliases in DEFAULT_COURSES],
            )
        await db.commit()


async def get_async_conn(db_path: str | None = None) -> aiosqlite.Connection:
    conn = await aiosqlite.connect(db_path or settings.db_path)
    await conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = aiosqlite.Row
    return conn
