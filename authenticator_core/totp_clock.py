"""
totp_clock.py — Đồng hồ dùng cho TOTP, có hiệu chỉnh lệch giờ (phút).

now_millis() = system time + time_correction_minutes * 60_000.
Giá trị hiệu chỉnh được lưu trong preferences.json (key "timeCorrectionMinutes"),
đọc một lần rồi cache; set_time_correction_minutes() ghi file và làm mới cache.
"""

import logging
import threading
import time
from typing import Optional, Protocol

from authenticator_core.config import KEY_TIME_CORRECTION_MINUTES, Preferences

logger = logging.getLogger(__name__)

MINUTE_IN_MILLIS = 60 * 1000
SECOND_IN_MILLIS = 1000


def millis_to_seconds(millis: int) -> int:
    return millis // SECOND_IN_MILLIS


def seconds_to_millis(seconds: int) -> int:
    return seconds * SECOND_IN_MILLIS


class WallClock(Protocol):
    def now_millis(self) -> int:
        ...


class SystemWallClock:
    """Đồng hồ hệ thống (time.time())."""

    def now_millis(self) -> int:
        return int(time.time() * 1000)


class TotpClock:
    """
    Đồng hồ hệ thống + độ lệch cấu hình được.

    Arguments:
        preferences: Preferences để đọc/ghi timeCorrectionMinutes
        wall_clock: nguồn thời gian (mặc định SystemWallClock), inject được cho test
    """

    def __init__(self, preferences: Preferences, wall_clock: WallClock = None):
        self._preferences = preferences
        self._wall_clock = wall_clock or SystemWallClock()
        self._lock = threading.Lock()
        self._cached_correction_minutes: Optional[int] = None

    @property
    def wall_clock(self) -> WallClock:
        return self._wall_clock

    def now_millis(self) -> int:
        return self._wall_clock.now_millis() + self.get_time_correction_minutes() * MINUTE_IN_MILLIS

    def get_time_correction_minutes(self) -> int:
        with self._lock:
            if self._cached_correction_minutes is None:
                self._cached_correction_minutes = self._preferences.get_int(
                    KEY_TIME_CORRECTION_MINUTES, 0)
            return self._cached_correction_minutes

    def set_time_correction_minutes(self, minutes: int) -> None:
        with self._lock:
            self._preferences.put_int(KEY_TIME_CORRECTION_MINUTES, minutes)
            # đọc lại từ file ở lần gọi kế tiếp
            self._cached_correction_minutes = None
        logger.info("Time correction set to %d minute(s)", minutes)
