import unittest
from unittest import mock

from authenticator_core.countdown import TimerScheduler, TotpCountdownTask
from authenticator_core.totp_counter import TotpCounter


class FakeClock:

    def __init__(self, millis=0):
        self.millis = millis

    def now_millis(self):
        return self.millis


class FakeScheduler:
    """Ghi lại các lần hẹn thay vì chạy thật; test tự gọi run()."""

    def __init__(self):
        self.delays = []
        self.handles = []

    def post_delayed(self, callback, delay_millis):
        handle = mock.Mock()
        self.delays.append(delay_millis)
        self.handles.append(handle)
        return handle


class TestTotpCountdownTask(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock(10500)
        self.scheduler = FakeScheduler()
        self.listener = mock.Mock()
        self.task = TotpCountdownTask(TotpCounter(30), self.clock, 1000, self.scheduler)
        self.task.set_listener(self.listener)

    def test_start_notifies_listener_immediately(self):
        self.task.start_and_notify_listener()
        self.assertEqual(self.listener.mock_calls, [
            mock.call.on_totp_counter_value_changed(),
            mock.call.on_totp_countdown(19500),
        ])
        # tick kế tiếp căn vào biên giây
        self.assertEqual(self.scheduler.delays, [500])

    def test_counter_change_fires_once_per_transition(self):
        self.task.start_and_notify_listener()
        self.listener.reset_mock()

        self.clock.millis = 11000
        self.task.run()
        self.assertEqual(self.listener.mock_calls, [mock.call.on_totp_countdown(19000)])

        self.listener.reset_mock()
        self.clock.millis = 30000
        self.task.run()
        self.assertEqual(self.listener.mock_calls, [
            mock.call.on_totp_counter_value_changed(),
            mock.call.on_totp_countdown(30000),
        ])

        self.listener.reset_mock()
        self.clock.millis = 31250
        self.task.run()
        self.assertEqual(self.listener.mock_calls, [mock.call.on_totp_countdown(28750)])
        self.assertEqual(self.scheduler.delays, [500, 1000, 1000, 750])

    def test_period_longer_than_interval_aligns_to_counter_start(self):
        task = TotpCountdownTask(TotpCounter(30), self.clock, 7000, self.scheduler)
        task.start_and_notify_listener()
        self.assertEqual(self.scheduler.delays, [7000 - 10500 % 7000])

    def test_second_start_is_ignored(self):
        self.task.start_and_notify_listener()
        self.task.start_and_notify_listener()
        self.assertEqual(self.scheduler.delays, [500])
        self.assertEqual(self.listener.on_totp_countdown.call_count, 1)

    def test_stop_cancels_pending_tick(self):
        self.task.start_and_notify_listener()
        self.task.stop()
        self.assertTrue(self.task.stopped)
        self.scheduler.handles[0].cancel.assert_called_once_with()

        self.listener.reset_mock()
        self.task.run()
        self.listener.assert_not_called()
        self.assertEqual(len(self.scheduler.delays), 1)

    def test_stopped_task_cannot_restart(self):
        self.task.stop()
        with self.assertRaises(RuntimeError):
            self.task.start_and_notify_listener()
        self.listener.assert_not_called()

    def test_stop_from_listener_prevents_reschedule(self):
        self.listener.on_totp_counter_value_changed.side_effect = self.task.stop
        self.task.start_and_notify_listener()
        self.listener.on_totp_countdown.assert_not_called()
        self.assertEqual(self.scheduler.delays, [])

    def test_without_listener(self):
        self.task.set_listener(None)
        self.task.start_and_notify_listener()
        self.assertEqual(self.scheduler.delays, [500])

    def test_invalid_period(self):
        with self.assertRaises(ValueError):
            TotpCountdownTask(TotpCounter(30), self.clock, 0, self.scheduler)


class TestTimerScheduler(unittest.TestCase):

    def test_post_delayed_returns_cancellable_daemon_timer(self):
        callback = mock.Mock()
        timer = TimerScheduler().post_delayed(callback, 60000)
        try:
            self.assertTrue(timer.daemon)
        finally:
            timer.cancel()
        callback.assert_not_called()


if __name__ == "__main__":
    unittest.main()
