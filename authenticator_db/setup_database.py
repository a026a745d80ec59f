"""
setup_database.py — Tạo bảng accounts và migrate schema cũ.

Migration chỉ thêm cột (additive-only), không bao giờ drop/rename cột:
- provider      (INTEGER DEFAULT 0)
- issuer        (TEXT DEFAULT NULL)  -> lần đầu thêm cột này sẽ auto-upgrade
                                         các account dạng "Google:..." / "Dropbox:..."
- original_name (TEXT DEFAULT NULL)

Việc auto-upgrade chỉ được bảo vệ bởi việc kiểm tra "cột issuer đã có chưa".
Nếu chạy lại trên một DB đã migrate dở dang thì có thể gán issuer hai lần: đây là
điểm yếu đã biết, giữ nguyên thay vì cố làm cho idempotent.
"""

import logging
import sqlite3
from typing import List

logger = logging.getLogger(__name__)

TABLE_NAME = "accounts"
ID_COLUMN = "_id"
NAME_COLUMN = "email"       # tên cột là "email" vì lý do lịch sử
SECRET_COLUMN = "secret"
COUNTER_COLUMN = "counter"
TYPE_COLUMN = "type"
PROVIDER_COLUMN = "provider"
ISSUER_COLUMN = "issuer"
ORIGINAL_NAME_COLUMN = "original_name"

EXPECTED_COLUMNS = (
    ID_COLUMN,
    NAME_COLUMN,
    SECRET_COLUMN,
    COUNTER_COLUMN,
    TYPE_COLUMN,
    PROVIDER_COLUMN,
    ISSUER_COLUMN,
    ORIGINAL_NAME_COLUMN,
)

PROVIDER_UNKNOWN = 0
PROVIDER_GOOGLE = 1
DEFAULT_HOTP_COUNTER = 0

GOOGLE_ISSUER_NAME = "Google"
AUTO_UPGRADE_ISSUERS = (GOOGLE_ISSUER_NAME, "Dropbox")

UNIQUE_INDEX_NAME = "accounts_name_issuer_unique"


def list_table_column_names_lower_case(conn: sqlite3.Connection,
                                       table_name: str = TABLE_NAME) -> List[str]:
    """Tên các cột của bảng (chữ thường), đọc từ PRAGMA table_info."""
    rows = conn.execute(f"PRAGMA table_info({table_name})").fetchall()
    # cột thứ 2 của PRAGMA table_info là "name"
    return [row[1].lower() for row in rows]


def create_accounts_table(conn: sqlite3.Connection) -> None:
    conn.execute(f'''
    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
        {ID_COLUMN} INTEGER PRIMARY KEY,
        {NAME_COLUMN} TEXT NOT NULL,
        {SECRET_COLUMN} TEXT NOT NULL,
        {COUNTER_COLUMN} INTEGER DEFAULT {DEFAULT_HOTP_COUNTER},
        {TYPE_COLUMN} INTEGER,
        {PROVIDER_COLUMN} INTEGER DEFAULT {PROVIDER_UNKNOWN},
        {ISSUER_COLUMN} TEXT DEFAULT NULL,
        {ORIGINAL_NAME_COLUMN} TEXT DEFAULT NULL
    )
    ''')


def auto_upgrade_older_accounts_with_issuer_prefix(conn: sqlite3.Connection) -> int:
    """
    Gán issuer cho account cũ có tên bắt đầu bằng "{issuer}:" (chỉ với AUTO_UPGRADE_ISSUERS).

    Trả về:
        int: số account đã được gán issuer
    """
    upgraded = 0
    rows = conn.execute(
        f"SELECT rowid, {NAME_COLUMN}, {ISSUER_COLUMN} FROM {TABLE_NAME} ORDER BY rowid"
    ).fetchall()
    for rowid, name, issuer in rows:
        if issuer is not None:
            logger.warning("Existing new-style account detected during account upgrade: %s:%s",
                           issuer, name)
            continue
        for candidate in AUTO_UPGRADE_ISSUERS:
            if name.startswith(candidate + ":"):
                logger.debug("Auto-upgrading old-style account: %s", name)
                conn.execute(
                    f"UPDATE {TABLE_NAME} SET {ISSUER_COLUMN} = ? WHERE rowid = ?",
                    (candidate, rowid),
                )
                upgraded += 1
                break
    return upgraded


def create_unique_index(conn: sqlite3.Connection) -> bool:
    """
    Tạo unique index trên (name, issuer); issuer NULL được coi là một giá trị riêng.

    DB cũ có thể đã chứa bản trùng: khi đó chỉ log warning, kiểm tra trùng ở tầng
    ứng dụng (CredentialStore.exists) vẫn còn hiệu lực.
    """
    try:
        conn.execute(
            f"CREATE UNIQUE INDEX IF NOT EXISTS {UNIQUE_INDEX_NAME} "
            f"ON {TABLE_NAME} ({NAME_COLUMN}, IFNULL({ISSUER_COLUMN}, ''))"
        )
        return True
    except sqlite3.IntegrityError as e:
        logger.warning("Could not create unique (name, issuer) index: %s", e)
        return False


def setup_database(conn: sqlite3.Connection) -> bool:
    """
    Thiết lập bảng accounts trên connection đã mở và migrate nếu cần.

    Trả về:
        bool: True nếu có ít nhất một cột được thêm (DB cũ đã được nâng cấp)
    """
    migrated = False
    with conn:
        create_accounts_table(conn)
        columns = list_table_column_names_lower_case(conn)

        if PROVIDER_COLUMN not in columns:
            logger.info("Adding missing column %s", PROVIDER_COLUMN)
            conn.execute(f"ALTER TABLE {TABLE_NAME} ADD COLUMN {PROVIDER_COLUMN} "
                         f"INTEGER DEFAULT {PROVIDER_UNKNOWN}")
            migrated = True

        if ISSUER_COLUMN not in columns:
            logger.info("Adding missing column %s", ISSUER_COLUMN)
            conn.execute(f"ALTER TABLE {TABLE_NAME} ADD COLUMN {ISSUER_COLUMN} TEXT DEFAULT NULL")
            if NAME_COLUMN in columns:
                upgraded = auto_upgrade_older_accounts_with_issuer_prefix(conn)
                logger.info("Auto-upgraded %d account(s) with issuer prefix", upgraded)
            migrated = True

        if ORIGINAL_NAME_COLUMN not in columns:
            logger.info("Adding missing column %s", ORIGINAL_NAME_COLUMN)
            conn.execute(f"ALTER TABLE {TABLE_NAME} ADD COLUMN {ORIGINAL_NAME_COLUMN} "
                         f"TEXT DEFAULT NULL")
            migrated = True

        if NAME_COLUMN in columns:
            create_unique_index(conn)
    return migrated
