"""
config.py — Hằng số mặc định + đọc/ghi file preferences (JSON).

- Đường dẫn dữ liệu mặc định: ~/.config/otp-authenticator
  (có thể override bằng biến môi trường OTP_AUTHENTICATOR_HOME).
- preferences.json chỉ chứa vài giá trị nhỏ (vd. timeCorrectionMinutes).
"""

import json
import logging
import os
from typing import Any, Dict

logger = logging.getLogger(__name__)

# --- Config / constants ----------------------------------------------------
PIN_LENGTH = 6               # mã thường: 6 chữ số
REFLECTIVE_PIN_LENGTH = 9    # challenge-response: 9 chữ số
DEFAULT_INTERVAL = 30        # TOTP step (giây)
MAX_DUPLICATE_NAMES = 20     # số bản trùng tên tối đa khi không có issuer

HOME_ENV_VAR = "OTP_AUTHENTICATOR_HOME"
DEFAULT_HOME = os.path.join("~", ".config", "otp-authenticator")
DATABASE_DIR = "databases"
DATABASE_FILE = "accounts.db"
PREFERENCES_FILE = "preferences.json"

KEY_TIME_CORRECTION_MINUTES = "timeCorrectionMinutes"


def get_data_dir() -> str:
    """Thư mục dữ liệu, ưu tiên biến môi trường OTP_AUTHENTICATOR_HOME."""
    return os.path.expanduser(os.environ.get(HOME_ENV_VAR, DEFAULT_HOME))


def get_database_path(data_dir: str = None) -> str:
    return os.path.join(data_dir or get_data_dir(), DATABASE_DIR, DATABASE_FILE)


def get_preferences_path(data_dir: str = None) -> str:
    return os.path.join(data_dir or get_data_dir(), PREFERENCES_FILE)


class Preferences:
    """
    Key-value store rất nhỏ trên file JSON.

    - File không tồn tại -> coi như rỗng.
    - File hỏng (JSON lỗi) -> log warning và coi như rỗng, không raise.
    - Mỗi lần put_* ghi lại toàn bộ file.

    Arguments:
        path: đường dẫn tới preferences.json
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read preferences %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed preferences %s", self.path)
            return {}
        return data

    def save(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=4)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.load().get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Preference %s has non-integer value %r", key, value)
            return default

    def put_int(self, key: str, value: int) -> None:
        data = self.load()
        data[key] = int(value)
        self.save(data)
