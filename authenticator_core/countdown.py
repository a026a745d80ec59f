"""
countdown.py — Bộ đếm ngược tới lần đổi mã TOTP kế tiếp (dùng để refresh UI).

Mỗi tick:
- nếu giá trị counter đổi so với lần trước -> on_totp_counter_value_changed() (đúng một lần / lần đổi)
- luôn gọi on_totp_countdown(millis_remaining)
- hẹn tick kế tiếp, căn theo biên của chu kỳ thông báo

stop() là vĩnh viễn: task đã stop thì không start lại được, muốn chạy lại phải tạo task mới.
Sau khi stop() trả về, không còn callback nào được gọi nữa (kể cả khi gọi từ thread khác).
"""

import logging
import threading
from typing import Callable, Optional, Protocol

from authenticator_core.totp_clock import TotpClock, millis_to_seconds, seconds_to_millis
from authenticator_core.totp_counter import TotpCounter

logger = logging.getLogger(__name__)


class CountdownListener(Protocol):
    def on_totp_countdown(self, millis_remaining: int) -> None:
        ...

    def on_totp_counter_value_changed(self) -> None:
        ...


class TimerScheduler:
    """Scheduler mặc định: mỗi lần hẹn là một threading.Timer (daemon)."""

    def post_delayed(self, callback: Callable[[], None], delay_millis: int) -> threading.Timer:
        timer = threading.Timer(max(delay_millis, 0) / 1000.0, callback)
        timer.daemon = True
        timer.start()
        return timer


class TotpCountdownTask:
    """
    Arguments:
        counter: TotpCounter dùng để tính giá trị hiện tại
        clock: nguồn thời gian (có now_millis())
        remaining_time_notification_period: chu kỳ gọi on_totp_countdown (ms)
        scheduler: object có post_delayed(callback, delay_millis) -> handle có cancel()
    """

    def __init__(self, counter: TotpCounter, clock: TotpClock,
                 remaining_time_notification_period: int, scheduler=None):
        if remaining_time_notification_period < 1:
            raise ValueError("Notification period must be positive")
        self._counter = counter
        self._clock = clock
        self._period = remaining_time_notification_period
        self._scheduler = scheduler or TimerScheduler()
        self._listener: Optional[CountdownListener] = None
        self._last_seen_counter_value: Optional[int] = None
        self._should_stop = False
        self._started = False
        self._pending = None
        self._lock = threading.RLock()

    def set_listener(self, listener: Optional[CountdownListener]) -> None:
        with self._lock:
            self._listener = listener

    @property
    def stopped(self) -> bool:
        return self._should_stop

    def start_and_notify_listener(self) -> None:
        """
        Bắt đầu đếm và gọi listener ngay lập tức (lần vẽ đầu tiên không bị cũ).
        Gọi lần thứ hai khi task đang chạy thì bị bỏ qua.

        Raises:
            RuntimeError: nếu task đã bị stop
        """
        with self._lock:
            if self._should_stop:
                raise RuntimeError("Task already stopped and cannot be restarted.")
            if self._started:
                logger.debug("Countdown task already running, ignoring start")
                return
            self._started = True
            self.run()

    def stop(self) -> None:
        with self._lock:
            self._should_stop = True
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None

    def run(self) -> None:
        # giữ lock trong lúc gọi listener để stop() ở thread khác phải chờ tick này xong
        with self._lock:
            if self._should_stop:
                return

            now = self._clock.now_millis()
            counter_value = self._get_counter_value(now)
            if self._last_seen_counter_value != counter_value:
                self._last_seen_counter_value = counter_value
                self._fire_counter_value_changed()
            self._fire_countdown(self._get_time_till_next_counter_value(now))
            if not self._should_stop:
                self._schedule_next_invocation(now)

    def _schedule_next_invocation(self, now: int) -> None:
        # căn tick kế tiếp vào biên chu kỳ, tính từ lúc counter hiện tại bắt đầu
        counter_value_age = now - seconds_to_millis(
            self._counter.get_value_start_time(self._get_counter_value(now)))
        time_till_next = self._period - (counter_value_age % self._period)
        self._pending = self._scheduler.post_delayed(self.run, time_till_next)

    def _fire_countdown(self, millis_remaining: int) -> None:
        if self._listener is not None and not self._should_stop:
            self._listener.on_totp_countdown(millis_remaining)

    def _fire_counter_value_changed(self) -> None:
        if self._listener is not None and not self._should_stop:
            self._listener.on_totp_counter_value_changed()

    def _get_time_till_next_counter_value(self, now: int) -> int:
        current = self._get_counter_value(now)
        return seconds_to_millis(self._counter.get_value_start_time(current + 1)) - now

    def _get_counter_value(self, now: int) -> int:
        return self._counter.get_value_at_time(millis_to_seconds(now))
