import io
import json
import os
import tempfile
import unittest
from unittest import mock

import pyotp

from authenticator_core import otp_cli
from authenticator_core.config import KEY_TIME_CORRECTION_MINUTES, PREFERENCES_FILE

SECRET = "7777777777777777"


class TestOtpCli(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.home = self.tmpdir.name

    def tearDown(self):
        self.tmpdir.cleanup()

    def run_cli(self, *argv):
        with mock.patch("sys.stdout", new_callable=io.StringIO) as out:
            code = otp_cli.main(["--home", self.home] + list(argv))
        return code, out.getvalue()

    def test_no_command_prints_hint(self):
        code, out = self.run_cli()
        self.assertEqual(code, 0)
        self.assertIn("-h", out)

    def test_add_and_list(self):
        code, out = self.run_cli("add", "--name", "bob@x.com", "--issuer", "Yahoo",
                                 "--secret", SECRET)
        self.assertEqual(code, 0)
        self.assertIn("[+] Added TOTP account: Yahoo:bob@x.com", out)
        self.assertIn("Check code: 724477", out)

        code, out = self.run_cli("list")
        self.assertEqual(code, 0)
        self.assertIn("TOTP  Yahoo:bob@x.com", out)
        self.assertTrue(os.path.exists(os.path.join(self.home, "databases", "accounts.db")))

    def test_list_empty(self):
        self.assertEqual(self.run_cli("list"), (0, "[*] No accounts.\n"))

    def test_add_generates_secret(self):
        code, out = self.run_cli("add", "--name", "random")
        self.assertEqual(code, 0)
        self.assertIn("[*] Generated secret: ", out)

    def test_add_rejects_bad_secret(self):
        code, out = self.run_cli("add", "--name", "x", "--secret", "not base32!")
        self.assertEqual(code, 1)
        self.assertTrue(out.startswith("[!] "))
        self.assertEqual(self.run_cli("list")[1], "[*] No accounts.\n")

    def test_add_warns_before_overwrite(self):
        self.run_cli("add", "--name", "bob", "--issuer", "Yahoo", "--secret", SECRET)
        code, out = self.run_cli("add", "--name", "bob", "--issuer", "Yahoo",
                                 "--secret", "2222222222222222")
        self.assertEqual(code, 0)
        self.assertIn("will be overwritten", out)

    def test_hotp_code_advances_counter(self):
        self.run_cli("add", "--name", "counter", "--secret", SECRET, "--hotp")
        self.assertIn("Code: 683298", self.run_cli("code", "--name", "counter")[1])
        self.assertIn("Code: 891123", self.run_cli("code", "--name", "counter")[1])
        self.assertIn("Check code: 724477", self.run_cli("check", "--name", "counter")[1])

    def test_challenge(self):
        self.run_cli("add", "--name", "counter", "--secret", SECRET, "--hotp")
        code, out = self.run_cli("code", "--name", "counter", "--challenge", "")
        self.assertIn("Response: 308683298", out)

    def test_code_for_missing_account(self):
        code, out = self.run_cli("code", "--name", "nobody")
        self.assertEqual(code, 1)
        self.assertIn("[!] No account found for nobody", out)

    def test_verify(self):
        self.run_cli("add", "--name", "bob", "--secret", SECRET)
        current = pyotp.TOTP(SECRET).now()
        code, out = self.run_cli("verify", "--name", "bob", "--code", current)
        self.assertEqual(code, 0)
        self.assertIn("VALID", out)
        wrong = "%06d" % ((int(current) + 1) % 1000000)
        code, out = self.run_cli("verify", "--name", "bob", "--code", wrong, "--window", "0")
        self.assertEqual(code, 1)
        self.assertIn("INVALID", out)

    def test_rename(self):
        self.run_cli("add", "--name", "bob", "--secret", SECRET)
        self.run_cli("add", "--name", "carol", "--secret", SECRET)
        self.assertEqual(self.run_cli("rename", "--name", "bob", "--new-name", "robert")[0], 0)
        code, out = self.run_cli("rename", "--name", "robert", "--new-name", "carol")
        self.assertEqual(code, 1)
        self.assertIn("[-] Could not rename", out)

    def test_delete(self):
        self.run_cli("add", "--name", "bob", "--secret", SECRET)
        self.assertEqual(self.run_cli("delete", "--name", "bob"), (0, "[+] Deleted bob\n"))
        self.assertEqual(self.run_cli("delete", "--name", "bob"),
                         (1, "[-] No such account: bob\n"))

    def test_swap(self):
        self.run_cli("add", "--name", "a", "--secret", SECRET)
        self.run_cli("add", "--name", "b", "--issuer", "X", "--secret", SECRET)
        code, out = self.run_cli("swap", "--first", "a", "--second", "b", "--second-issuer", "X")
        self.assertEqual((code, out), (0, "[+] Swapped a <-> X:b\n"))
        listing = self.run_cli("list")[1]
        self.assertLess(listing.index("X:b"), listing.index("  a\n"))

        code, out = self.run_cli("swap", "--first", "a", "--second", "missing")
        self.assertEqual(code, 1)

    def test_clock_correction_is_persisted(self):
        code, out = self.run_cli("clock", "--set-correction", "5")
        self.assertEqual(code, 0)
        self.assertIn("Time correction: 5 minute(s)", out)
        with open(os.path.join(self.home, PREFERENCES_FILE), encoding="utf-8") as f:
            self.assertEqual(json.load(f), {KEY_TIME_CORRECTION_MINUTES: 5})
        self.assertIn("Time correction: 5 minute(s)", self.run_cli("clock")[1])

    def test_watch_stops_on_ctrl_c(self):
        self.run_cli("add", "--name", "bob", "--secret", SECRET)
        with mock.patch("authenticator_core.otp_cli.time.sleep", side_effect=KeyboardInterrupt):
            code, out = self.run_cli("watch", "--period-ms", "60000")
        self.assertEqual(code, 0)
        self.assertIn("  bob\n", out)
        self.assertIn("Bye.", out)


if __name__ == "__main__":
    unittest.main()
