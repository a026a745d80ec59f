import unittest

from authenticator_core.totp_counter import TotpCounter


class TestTotpCounter(unittest.TestCase):

    def test_construct_with_invalid_arguments(self):
        with self.assertRaises(ValueError):
            TotpCounter(0)
        with self.assertRaises(ValueError):
            TotpCounter(-3)
        with self.assertRaises(ValueError):
            TotpCounter(30, -1)

    def test_defaults(self):
        counter = TotpCounter(30)
        self.assertEqual(counter.time_step, 30)
        self.assertEqual(counter.start_time, 0)

    def test_value_at_time(self):
        counter = TotpCounter(7, 123)
        expected = {
            0: -18, 115: -2, 116: -1, 122: -1, 123: 0, 129: 0, 130: 1,
            823: 100, 70000000123: 10000000000,
        }
        for time, value in expected.items():
            self.assertEqual(counter.get_value_at_time(time), value, time)

    def test_value_at_time_before_start_rounds_down(self):
        self.assertEqual(TotpCounter(3, 11).get_value_at_time(10), -1)
        self.assertEqual(TotpCounter(7, 123).get_value_at_time(116), -1)
        self.assertEqual(TotpCounter(7, 123).get_value_at_time(117), -1)

    def test_value_at_negative_time(self):
        with self.assertRaises(ValueError):
            TotpCounter(30).get_value_at_time(-1)

    def test_value_start_time(self):
        counter = TotpCounter(7, 123)
        expected = {-100: -577, -1: 116, 0: 123, 1: 130, 100: 823}
        for value, time in expected.items():
            self.assertEqual(counter.get_value_start_time(value), time, value)

    def test_round_trip_and_monotonicity(self):
        counter = TotpCounter(7, 123)
        previous = None
        for value in range(-17, 200):
            start = counter.get_value_start_time(value)
            if start >= 0:
                self.assertEqual(counter.get_value_at_time(start), value)
            if previous is not None:
                self.assertLessEqual(previous, start)
            previous = start

        last = counter.get_value_at_time(0)
        for time in range(1, 2000):
            current = counter.get_value_at_time(time)
            self.assertLessEqual(last, current)
            last = current


if __name__ == "__main__":
    unittest.main()
