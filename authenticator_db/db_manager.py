"""
db_manager.py — CredentialStore: lưu trữ account OTP trên SQLite.

Mỗi account được định danh bởi cặp (name, issuer): xem AccountIndex.
Các quy tắc chính:
- add() có issuer: ghi đè account "tương tự" (cùng issuer, cùng stripped name) nếu có.
- add() không issuer: KHÔNG ghi đè, mà thêm hậu tố "(1)", "(2)", ... tối đa MAX_DUPLICATE_NAMES.
- rename() không đổi issuer, không ghi đè account khác, không cho đổi tên account Google nội bộ.
- swap_id() đổi thứ tự hiển thị của hai account trong một transaction.

Store không phải global: caller tự tạo AccountDb(path) và truyền đi (dependency injection),
đóng bằng close() hoặc dùng `with AccountDb(path) as db:`.
"""

import enum
import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from authenticator_core.config import MAX_DUPLICATE_NAMES
from authenticator_core.exceptions import (
    DuplicateLimitError,
    IdUpdateFailure,
    StoreOpenFailure,
    UnsupportedOperation,
)
from authenticator_db.file_utils import (
    get_filesystem_info_for_error_string,
    restrict_access_to_owner,
)
from authenticator_db.setup_database import (
    COUNTER_COLUMN,
    EXPECTED_COLUMNS,
    GOOGLE_ISSUER_NAME,
    ID_COLUMN,
    ISSUER_COLUMN,
    NAME_COLUMN,
    ORIGINAL_NAME_COLUMN,
    PROVIDER_COLUMN,
    PROVIDER_GOOGLE,
    PROVIDER_UNKNOWN,
    SECRET_COLUMN,
    TABLE_NAME,
    TYPE_COLUMN,
    list_table_column_names_lower_case,
    setup_database,
)

logger = logging.getLogger(__name__)

# Account OTP nội bộ của Google: không có issuer nhưng vẫn được phép ghi đè, và không được đổi tên
GOOGLE_CORP_ACCOUNT_NAME = "Google Internal 2Factor"
GOOGLE_EMAIL_SUFFIXES = ("@gmail.com", "@google.com")
GOOGLE_CORP_EMAIL_SUFFIX = "@google.com"

INVALID_ID = -1
OPEN_ATTEMPTS = 3
OPEN_RETRY_BACKOFF_SECONDS = 0.1

# counter lưu dưới dạng INTEGER 64-bit có dấu của SQLite
_COUNTER_MAX = 2 ** 63 - 1
_COUNTER_MIN = -(2 ** 63)


class OtpType(enum.IntEnum):
    """Giá trị lưu trong cột type: 0 = TOTP, 1 = HOTP."""

    TOTP = 0
    HOTP = 1

    @classmethod
    def get_enum(cls, value) -> Optional["OtpType"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class AccountIndex:
    """
    Định danh bất biến của một account: (name, issuer).

    - issuer rỗng "" được chuẩn hoá thành None.
    - So sánh / hash dựa trên đúng cặp (name, issuer), KHÔNG dùng stripped name.
    """

    name: str
    issuer: Optional[str] = None

    def __post_init__(self):
        if self.name is None:
            raise ValueError("Account name must not be None")
        if self.issuer == "":
            object.__setattr__(self, "issuer", None)

    @classmethod
    def from_strings(cls, name: str, issuer: Optional[str] = None) -> "AccountIndex":
        return cls(name, issuer or None)

    @property
    def stripped_name(self) -> str:
        """name bỏ tiền tố "{issuer}:" (nếu có), rồi strip khoảng trắng."""
        if self.issuer and self.name.startswith(self.issuer + ":"):
            return self.name[len(self.issuer) + 1:].strip()
        return self.name.strip()

    @property
    def display_name(self) -> str:
        if not self.issuer or self.name.startswith(self.issuer + ":"):
            return self.name
        return f"{self.issuer}:{self.name}"

    def __str__(self):
        return self.display_name


def get_prefixed_name_for(account_name: str, issuer: Optional[str]) -> str:
    """Tên hiển thị dạng "issuer:name" (không lặp lại tiền tố nếu name đã có)."""
    return AccountIndex(account_name, issuer).display_name


def _where_clause(index: AccountIndex):
    """Trả về (sql, params) cho điều kiện WHERE khớp đúng (name, issuer)."""
    if index.issuer is None:
        return f"{NAME_COLUMN} = ? AND {ISSUER_COLUMN} IS NULL", (index.name,)
    return f"{NAME_COLUMN} = ? AND {ISSUER_COLUMN} = ?", (index.name, index.issuer)


def _content_values(secret: Optional[str] = None, otp_type: Optional[OtpType] = None,
                    counter: Optional[int] = None, google_account: Optional[bool] = None) -> dict:
    """Chỉ đưa vào các field được truyền (None = giữ nguyên giá trị cũ)."""
    values = {}
    if secret is not None:
        values[SECRET_COLUMN] = secret
    if otp_type is not None:
        values[TYPE_COLUMN] = int(otp_type)
    if counter is not None:
        values[COUNTER_COLUMN] = counter
    if google_account is not None:
        values[PROVIDER_COLUMN] = PROVIDER_GOOGLE if google_account else PROVIDER_UNKNOWN
    return values


class AccountDb:
    """
    CredentialStore trên SQLite.

    Mọi thao tác đều đi qua một RLock, và các thao tác ghi nhiều bước (add, swap_id)
    chạy trong một transaction: reader luôn thấy trạng thái trước hoặc sau, không thấy nửa vời.

    Arguments:
        database_path: đường dẫn file SQLite, hoặc ":memory:"
        open_attempts: số lần thử mở database
        retry_backoff: số giây chờ (tăng tuyến tính) giữa các lần thử

    Raises:
        StoreOpenFailure: nếu không mở được sau open_attempts lần
    """

    def __init__(self, database_path: str, open_attempts: int = OPEN_ATTEMPTS,
                 retry_backoff: float = OPEN_RETRY_BACKOFF_SECONDS):
        self.database_path = database_path
        self._lock = threading.RLock()
        self._conn = self._open_database(open_attempts, retry_backoff)
        if setup_database(self._conn):
            logger.info("Database upgrade complete. Database consistent: %s",
                        self.is_db_consistent())

    # --- Lifecycle -------------------------------------------------------------
    def _prepare_directory(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.database_path))
        if os.path.isdir(directory):
            return
        try:
            os.makedirs(directory)
            restrict_access_to_owner(directory)
        except OSError as e:
            # sqlite3.connect bên dưới sẽ báo lỗi thật nếu thư mục không dùng được
            logger.warning("Could not prepare database directory %s: %s", directory, e)

    def _open_database(self, attempts: int, retry_backoff: float) -> sqlite3.Connection:
        if self.database_path != ":memory:":
            self._prepare_directory()

        last_error = None
        for attempt in range(1, attempts + 1):
            conn = None
            try:
                conn = sqlite3.connect(self.database_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                # ép SQLite đọc header để phát hiện file hỏng ngay tại đây
                conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
                return conn
            except sqlite3.Error as e:
                if conn is not None:
                    conn.close()
                last_error = e
                logger.warning("Failed to open database %s (attempt %d/%d): %s",
                               self.database_path, attempt, attempts, e)
                if attempt < attempts:
                    time.sleep(retry_backoff * attempt)

        raise StoreOpenFailure(
            f"Failed to open account database in {attempts} tries: {last_error}",
            get_filesystem_info_for_error_string(self.database_path),
        ) from last_error

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @staticmethod
    def delete_database(database_path: str) -> bool:
        """Xoá hẳn file database (không chỉ dữ liệu). Trả về False nếu file không tồn tại."""
        try:
            os.remove(database_path)
        except FileNotFoundError:
            return False
        return True

    def delete_all_data(self) -> bool:
        with self._lock, self._conn:
            self._conn.execute(f"DELETE FROM {TABLE_NAME}")
        return True

    # --- Schema helpers ----------------------------------------------------------
    def list_table_column_names_lower_case(self) -> List[str]:
        with self._lock:
            return list_table_column_names_lower_case(self._conn)

    def is_db_consistent(self) -> bool:
        """
        Kiểm tra schema có đủ cột và mỗi account chỉ có đúng một dòng.

        Chỉ dùng để log / chẩn đoán, không sửa dữ liệu.
        """
        result = True
        with self._lock:
            columns = self.list_table_column_names_lower_case()
            if len(columns) > len(EXPECTED_COLUMNS):
                logger.warning("Database has extra columns")
            for column in EXPECTED_COLUMNS:
                if column not in columns:
                    logger.error("Database is missing column: %s", column)
                    result = False
            if not result:
                return False

            for index in self.list_accounts():
                where, params = _where_clause(index)
                (count,) = self._conn.execute(
                    f"SELECT count(*) FROM {TABLE_NAME} WHERE {where}", params).fetchone()
                if count != 1:
                    logger.error("Multiple copies detected for account: %s", index)
                    result = False
        return result

    # --- Queries -----------------------------------------------------------------
    def _get_row(self, index: AccountIndex) -> Optional[sqlite3.Row]:
        where, params = _where_clause(index)
        with self._lock:
            return self._conn.execute(
                f"SELECT * FROM {TABLE_NAME} WHERE {where}", params).fetchone()

    def _get_column(self, index: AccountIndex, column: str):
        row = self._get_row(index)
        if row is None or column not in row.keys():
            return None
        return row[column]

    def exists(self, index: AccountIndex) -> bool:
        return self._get_row(index) is not None

    index_exists = exists

    def list_accounts(self) -> List[AccountIndex]:
        """Danh sách account theo thứ tự _id (thứ tự hiển thị, đổi được bằng swap_id)."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM {TABLE_NAME} ORDER BY rowid").fetchall()
        accounts = []
        for row in rows:
            keys = row.keys()
            issuer = row[ISSUER_COLUMN] if ISSUER_COLUMN in keys else None
            accounts.append(AccountIndex(row[NAME_COLUMN], issuer))
        return accounts

    def find_similar(self, index: AccountIndex) -> Optional[AccountIndex]:
        """
        Tìm chính index, hoặc một index "tương tự" đã có trong DB.

        "Tương tự" = cùng issuer (khác None) và cùng stripped_name, ví dụ
        ("Yahoo:bob@x.com", "Yahoo") tương tự ("bob@x.com", "Yahoo").
        Account không có issuer chỉ khớp khi giống hệt.
        """
        if self.exists(index):
            return index
        if index.issuer is None:
            return None

        with self._lock:
            rows = self._conn.execute(
                f"SELECT {NAME_COLUMN} FROM {TABLE_NAME} WHERE {ISSUER_COLUMN} = ? ORDER BY rowid",
                (index.issuer,),
            ).fetchall()
        stripped = index.stripped_name
        for row in rows:
            candidate = AccountIndex(row[NAME_COLUMN], index.issuer)
            if candidate.stripped_name == stripped:
                return candidate
        return None

    def get_secret(self, index: AccountIndex) -> Optional[str]:
        return self._get_column(index, SECRET_COLUMN)

    def get_counter(self, index: AccountIndex) -> Optional[int]:
        return self._get_column(index, COUNTER_COLUMN)

    def get_type(self, index: AccountIndex) -> Optional[OtpType]:
        value = self._get_column(index, TYPE_COLUMN)
        return None if value is None else OtpType.get_enum(value)

    def get_original_name(self, index: AccountIndex) -> Optional[str]:
        """Tên lúc tạo account (trước mọi lần rename), None với account cũ."""
        return self._get_column(index, ORIGINAL_NAME_COLUMN)

    def get_provider(self, index: AccountIndex) -> Optional[int]:
        return self._get_column(index, PROVIDER_COLUMN)

    def get_issuer(self, index: AccountIndex) -> Optional[str]:
        return self._get_column(index, ISSUER_COLUMN)

    def get_id(self, index: AccountIndex) -> int:
        value = self._get_column(index, ID_COLUMN)
        return INVALID_ID if value is None else value

    # --- Google account heuristics -------------------------------------------------
    def is_google_account(self, index: AccountIndex) -> bool:
        """
        Đoán account có phải của Google hay không, theo thứ tự ưu tiên:

        1. issuer là "Google" (không phân biệt hoa thường) -> True
        2. có issuer khác -> False
        3. là account Google nội bộ -> True
        4. cột provider đánh dấu Google -> True
        5. account mới (có original_name) -> False
        6. account cũ: tên kết thúc bằng @gmail.com / @google.com
        """
        if index.issuer is not None:
            return index.issuer.lower() == GOOGLE_ISSUER_NAME.lower()
        if index.name == GOOGLE_CORP_ACCOUNT_NAME:
            return True

        row = self._get_row(index)
        if row is not None:
            keys = row.keys()
            if PROVIDER_COLUMN in keys and row[PROVIDER_COLUMN] == PROVIDER_GOOGLE:
                return True
            if ORIGINAL_NAME_COLUMN in keys and row[ORIGINAL_NAME_COLUMN] is not None:
                return False

        return index.name.lower().endswith(GOOGLE_EMAIL_SUFFIXES)

    def find_google_corp_account(self) -> Optional[AccountIndex]:
        index = AccountIndex(GOOGLE_CORP_ACCOUNT_NAME, None)
        return index if self.exists(index) else None

    def find_matching_google_account(self, account_name: str) -> Optional[AccountIndex]:
        """
        Tìm account tương ứng với một tài khoản Google trên thiết bị (vd. "alice@gmail.com").

        Thử lần lượt với tiền tố "" rồi "Google:":
        - (prefix + name, issuer Google)
        - account issuer Google có original_name khớp (không phân biệt hoa thường)
        - (prefix + name, không issuer)
        Cuối cùng, email @google.com thì trả về account Google nội bộ (nếu có).
        """
        for prefix in ("", "Google:"):
            candidate = AccountIndex(prefix + account_name, GOOGLE_ISSUER_NAME)
            if self.exists(candidate):
                return candidate

            for index in self.list_accounts():
                if index.issuer != GOOGLE_ISSUER_NAME:
                    continue
                original_name = self.get_original_name(index)
                if original_name is None:
                    continue
                if account_name.lower() == (prefix + original_name).lower():
                    return index

            candidate = AccountIndex(prefix + account_name, None)
            if self.exists(candidate):
                return candidate

        if account_name.lower().endswith(GOOGLE_CORP_EMAIL_SUFFIX):
            return self.find_google_corp_account()
        return None

    # --- Mutations -------------------------------------------------------------------
    def _update_values(self, index: AccountIndex, values: dict) -> int:
        """UPDATE các cột trong values cho dòng khớp index; trả về số dòng bị ảnh hưởng."""
        if not values:
            return 1 if self.exists(index) else 0
        where, params = _where_clause(index)
        assignments = ", ".join(f"{column} = ?" for column in values)
        cursor = self._conn.execute(
            f"UPDATE {TABLE_NAME} SET {assignments} WHERE {where}",
            tuple(values.values()) + params,
        )
        return cursor.rowcount

    def _insert_values(self, values: dict) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        self._conn.execute(
            f"INSERT INTO {TABLE_NAME} ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )

    def _insert_new_account(self, values: dict) -> bool:
        """INSERT nếu (name, issuer) chưa có; False nếu đã tồn tại."""
        index = AccountIndex(values[NAME_COLUMN], values.get(ISSUER_COLUMN))
        if self.exists(index):
            return False
        try:
            self._insert_values(values)
        except sqlite3.IntegrityError:
            return False
        return True

    def increment_counter(self, index: AccountIndex) -> None:
        """counter += 1 (read-modify-write), tràn số thì quay vòng như số nguyên 64-bit."""
        with self._lock, self._conn:
            counter = self.get_counter(index)
            if counter is None:
                return
            counter += 1
            if counter > _COUNTER_MAX:
                counter = _COUNTER_MIN
            self._update_values(index, {COUNTER_COLUMN: counter})

    def update(self, index: AccountIndex, secret: Optional[str] = None,
               otp_type: Optional[OtpType] = None, counter: Optional[int] = None,
               google_account: Optional[bool] = None) -> bool:
        """
        Cập nhật một phần account đã có; tham số None = giữ nguyên.

        Trả về:
            bool: False nếu không có account khớp index
        """
        logger.debug("Updating account: %s", index)
        values = _content_values(secret, otp_type, counter, google_account)
        with self._lock, self._conn:
            affected_rows = self._update_values(index, values)
        if affected_rows > 1:
            logger.error("Unexpectedly changed multiple rows during update. "
                         "Database consistent: %s", self.is_db_consistent())
        return affected_rows > 0

    def add_will_overwrite(self, index: AccountIndex) -> bool:
        """
        add() với index này sẽ ghi đè secret cũ hay không.

        Account không issuer (trừ account Google nội bộ) không bao giờ bị ghi đè.
        """
        if index.issuer is None and index.name != GOOGLE_CORP_ACCOUNT_NAME:
            return False
        return self.find_similar(index) is not None

    def add(self, name: str, secret: str, otp_type: OtpType, counter: Optional[int] = None,
            google_account: Optional[bool] = None, issuer: Optional[str] = None) -> AccountIndex:
        """
        Thêm account mới (hoặc ghi đè account tương tự nếu có issuer).

        Arguments:
            name: tên account (vd. email)
            secret: secret Base32 (không kiểm tra độ dài ở tầng này)
            otp_type: OtpType.TOTP / OtpType.HOTP
            counter: counter ban đầu (chỉ có ý nghĩa với HOTP)
            google_account: True/False nếu biết nguồn, None nếu không rõ
            issuer: issuer trong QR code, None/"" nếu không có

        Trả về:
            AccountIndex thực sự được ghi (có thể là "name(1)", ...)

        Raises:
            DuplicateLimitError: quá MAX_DUPLICATE_NAMES account cùng tên không issuer
        """
        if name is None or secret is None or otp_type is None:
            raise ValueError("name, secret and otp_type are required")
        issuer = issuer or None
        values = _content_values(secret, otp_type, counter, google_account)
        index_to_add = AccountIndex(name, issuer)
        logger.info("Adding account: %s", index_to_add)

        with self._lock:
            if issuer is not None or name == GOOGLE_CORP_ACCOUNT_NAME:
                with self._conn:
                    if issuer is not None:
                        values[ISSUER_COLUMN] = issuer
                        similar = self.find_similar(index_to_add)
                        if similar is not None:
                            logger.info("Will overwrite similar account: %s", similar)
                            index_to_add = similar
                    if self._update_values(index_to_add, values) == 0:
                        values[NAME_COLUMN] = name
                        values[ORIGINAL_NAME_COLUMN] = name
                        self._insert_values(values)
                    else:
                        logger.info("Overwrote existing OTP seed for: %s", index_to_add)
                if index_to_add.name != name:
                    # ghi đè account tương tự có tên khác -> thử đổi tên cho khớp yêu cầu
                    if self.rename(index_to_add, name):
                        index_to_add = AccountIndex(name, issuer)
                    else:
                        logger.warning("Could not rename %s to %s after overwrite",
                                       index_to_add, name)
                return index_to_add

            values[NAME_COLUMN] = name
            values[ORIGINAL_NAME_COLUMN] = name
            tries = 0
            with self._conn:
                while not self._insert_new_account(values):
                    tries += 1
                    if tries >= MAX_DUPLICATE_NAMES:
                        raise DuplicateLimitError(f"Too many accounts with same name: {name}")
                    index_to_add = AccountIndex(f"{name}({tries})", None)
                    values[NAME_COLUMN] = index_to_add.name
            return index_to_add

    def rename(self, old_index: AccountIndex, new_name: str) -> bool:
        """
        Đổi tên account, giữ nguyên issuer / secret / counter / provider / _id.

        Trả về:
            bool: True nếu thành công (hoặc tên không đổi), False nếu (new_name, issuer)
                  đã tồn tại hoặc account cũ không có

        Raises:
            UnsupportedOperation: khi đổi tên account Google nội bộ
        """
        if new_name is None:
            raise ValueError("new_name is required")
        if old_index.name == new_name:
            return True
        if old_index.name == GOOGLE_CORP_ACCOUNT_NAME:
            raise UnsupportedOperation(f"Renaming {GOOGLE_CORP_ACCOUNT_NAME} is not supported")

        with self._lock:
            if self.exists(AccountIndex(new_name, old_index.issuer)):
                return False
            with self._conn:
                affected_rows = self._update_values(old_index, {NAME_COLUMN: new_name})
        if affected_rows > 1:
            logger.error("Unexpectedly changed multiple rows during rename. "
                         "Database consistent: %s", self.is_db_consistent())
        return affected_rows > 0

    def delete(self, index: AccountIndex) -> None:
        where, params = _where_clause(index)
        with self._lock, self._conn:
            self._conn.execute(f"DELETE FROM {TABLE_NAME} WHERE {where}", params)

    def swap_id(self, first: AccountIndex, second: AccountIndex) -> None:
        """
        Đổi _id (thứ tự) của hai account trong một transaction.

        second -> INVALID_ID, first -> id cũ của second, second -> id cũ của first.

        Raises:
            IdUpdateFailure: account không tồn tại hoặc SQLite báo lỗi; mọi thay đổi bị rollback
        """
        with self._lock:
            first_id = self.get_id(first)
            second_id = self.get_id(second)
            if INVALID_ID in (first_id, second_id):
                raise IdUpdateFailure(f"Updating the Id failed for {first} and {second}: "
                                      f"account not found")
            try:
                with self._conn:
                    self._update_values(second, {ID_COLUMN: INVALID_ID})
                    self._update_values(first, {ID_COLUMN: second_id})
                    self._update_values(second, {ID_COLUMN: first_id})
            except sqlite3.Error as e:
                raise IdUpdateFailure(
                    f"Updating the Id failed for {first} and {second}") from e
