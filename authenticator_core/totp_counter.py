"""
totp_counter.py — Ánh xạ thời điểm (giây) -> giá trị counter của TOTP.

counter = floor((time - start_time) / time_step), RFC 6238 gọi là T = (now - T0) / X.
"""


class TotpCounter:
    """
    Value object bất biến: (time_step, start_time).

    Arguments:
        time_step: độ dài mỗi interval (giây), phải >= 1
        start_time: T0 (giây kể từ epoch), phải >= 0, mặc định 0

    Raises:
        ValueError: tham số không hợp lệ
    """

    __slots__ = ("_time_step", "_start_time")

    def __init__(self, time_step: int, start_time: int = 0):
        if time_step < 1:
            raise ValueError(f"Time step must be positive: {time_step}")
        _assert_valid_time(start_time)
        self._time_step = time_step
        self._start_time = start_time

    @property
    def time_step(self) -> int:
        return self._time_step

    @property
    def start_time(self) -> int:
        return self._start_time

    def get_value_at_time(self, time: int) -> int:
        """
        Giá trị counter tại thời điểm time (giây).

        Thời điểm trước start_time cho giá trị âm, làm tròn xuống:
        TotpCounter(7, 123).get_value_at_time(116) == -1.
        """
        _assert_valid_time(time)
        # `//` của Python là floor division nên đúng cả khi hiệu số âm
        return (time - self._start_time) // self._time_step

    def get_value_start_time(self, value: int) -> int:
        """Thời điểm (giây) mà counter bắt đầu mang giá trị value."""
        return self._start_time + value * self._time_step

    def __repr__(self):
        return f"TotpCounter(time_step={self._time_step}, start_time={self._start_time})"


def _assert_valid_time(time: int) -> None:
    if time < 0:
        raise ValueError(f"Negative time: {time}")
