#!/usr/bin/env python3
"""
otp_cli.py — CLI quản lý nhiều account OTP (multi-account authenticator).

Cung cấp các subcommand:
- add     : thêm account (sinh secret ngẫu nhiên nếu không truyền --secret)
- list    : liệt kê account kèm mã TOTP hiện tại
- code    : sinh mã kế tiếp (HOTP sẽ tăng counter), hoặc trả lời challenge
- check   : in "check code" (mã tại counter 0) để đối chiếu secret
- verify  : xác minh mã TOTP với cửa sổ ±N interval
- rename  : đổi tên account
- delete  : xoá account
- swap    : đổi thứ tự hai account
- watch   : hiển thị mã TOTP theo thời gian thực (Ctrl+C để thoát)
- clock   : xem / chỉnh độ lệch đồng hồ (phút)
"""

import argparse
import logging
import sys
import time

import pyotp

from authenticator_core import base32, config
from authenticator_core.countdown import TotpCountdownTask
from authenticator_core.exceptions import OtpError
from authenticator_core.otp_provider import OtpProvider
from authenticator_core.totp_clock import TotpClock
from authenticator_db.db_manager import AccountDb, AccountIndex, OtpType

logger = logging.getLogger(__name__)


def _open(args):
    """Mở AccountDb + OtpProvider theo --home / --db."""
    db_path = args.db or config.get_database_path(args.home)
    prefs = config.Preferences(config.get_preferences_path(args.home))
    account_db = AccountDb(db_path)
    return OtpProvider(account_db, TotpClock(prefs))


def _index(args, name_attr="name", issuer_attr="issuer") -> AccountIndex:
    return AccountIndex.from_strings(getattr(args, name_attr), getattr(args, issuer_attr))


# --- CLI command handlers ---
def cmd_add(args):
    secret = args.secret
    if not secret:
        # Chỉ dành cho mục đích tạo secret key random khi user không nhập
        secret = pyotp.random_base32()
        print(f"[*] Generated secret: {secret}")

    # secret sai Base32 -> DecodingError, báo lỗi trước khi ghi vào DB
    base32.decode(secret)
    otp_type = OtpType.HOTP if args.hotp else OtpType.TOTP
    provider = _open(args)
    with provider.account_db as db:
        if db.add_will_overwrite(AccountIndex.from_strings(args.name, args.issuer)):
            print(f"[!] Existing account '{args.name}' will be overwritten")
        index = db.add(args.name, secret, otp_type,
                       counter=args.counter if args.hotp else None,
                       google_account=True if args.google else None,
                       issuer=args.issuer)
        print(f"[+] Added {otp_type.name} account: {index}")
        print(f"    Check code: {provider.get_check_code(index)}")


def cmd_list(args):
    provider = _open(args)
    with provider.account_db:
        infos = provider.get_pin_infos()
        if not infos:
            print("[*] No accounts.")
            return
        for info in infos:
            pin = info.pin if info.pin is not None else "------"
            kind = "HOTP" if info.is_hotp else "TOTP"
            print(f"{pin}  {kind}  {info.index}")


def cmd_code(args):
    provider = _open(args)
    with provider.account_db:
        index = _index(args)
        if args.challenge is not None:
            code = provider.respond_to_challenge(index, args.challenge)
            print(f"[{index}] Response: {code}")
        else:
            code = provider.get_next_code(index)
            print(f"[{index}] Code: {code}")


def cmd_check(args):
    provider = _open(args)
    with provider.account_db:
        index = _index(args)
        print(f"[{index}] Check code: {provider.get_check_code(index)}")


def cmd_verify(args):
    provider = _open(args)
    with provider.account_db:
        index = _index(args)
        ok = provider.verify_totp_code(index, args.code, args.window, args.window)
    if ok:
        print(f"[{index}] [+] TOTP code is VALID")
    else:
        print(f"[{index}] [-] TOTP code is INVALID")
    return 0 if ok else 1


def cmd_rename(args):
    provider = _open(args)
    with provider.account_db as db:
        index = _index(args)
        if db.rename(index, args.new_name):
            print(f"[+] Renamed {index} -> {AccountIndex(args.new_name, index.issuer)}")
            return 0
    print(f"[-] Could not rename {index}: target exists or account not found")
    return 1


def cmd_delete(args):
    provider = _open(args)
    with provider.account_db as db:
        index = _index(args)
        if not db.exists(index):
            print(f"[-] No such account: {index}")
            return 1
        db.delete(index)
    print(f"[+] Deleted {index}")
    return 0


def cmd_swap(args):
    provider = _open(args)
    with provider.account_db as db:
        first = _index(args, "first", "first_issuer")
        second = _index(args, "second", "second_issuer")
        db.swap_id(first, second)
    print(f"[+] Swapped {first} <-> {second}")


class _PrintingListener:
    """Listener cho lệnh watch: in mã khi counter đổi, in thời gian còn lại mỗi tick."""

    def __init__(self, provider: OtpProvider):
        self.provider = provider

    def on_totp_counter_value_changed(self):
        print()
        for info in self.provider.get_pin_infos():
            if not info.is_hotp:
                print(f"{info.pin}  {info.index}")

    def on_totp_countdown(self, millis_remaining):
        print(f".. {millis_remaining // 1000:2d}s left", end="\r", flush=True)


def cmd_watch(args):
    provider = _open(args)
    task = TotpCountdownTask(provider.totp_counter, provider.totp_clock, args.period_ms)
    task.set_listener(_PrintingListener(provider))
    print("Press Ctrl+C to quit.")
    try:
        task.start_and_notify_listener()
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nBye.")
    finally:
        task.stop()
        provider.account_db.close()


def cmd_clock(args):
    prefs = config.Preferences(config.get_preferences_path(args.home))
    clock = TotpClock(prefs)
    if args.set_correction is not None:
        clock.set_time_correction_minutes(args.set_correction)
    print(f"[*] Time correction: {clock.get_time_correction_minutes()} minute(s)")


def cmd_help(args):
    print("'otp-authenticator -h' for help.")


# --- Argparse builder ---
def _add_index_args(p, required=True):
    p.add_argument("--name", required=required, help="Account name (e.g. alice@example.com)")
    p.add_argument("--issuer", default=None, help="Issuer (optional)")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Multi-account TOTP/HOTP authenticator CLI")
    p.add_argument("--home", default=None, help="Data directory (default: $OTP_AUTHENTICATOR_HOME "
                                                 "or ~/.config/otp-authenticator)")
    p.add_argument("--db", default=None, help="Override path of the SQLite account database")
    p.add_argument("--verbose", action="store_true", help="Verbose (debug) logging")
    sub = p.add_subparsers(dest="cmd")
    p.set_defaults(func=cmd_help)

    # add
    pa = sub.add_parser("add", help="Add an account")
    _add_index_args(pa)
    pa.add_argument("--secret", help="Base32 secret (random if omitted)")
    pa.add_argument("--hotp", action="store_true", help="Counter-based (HOTP) account")
    pa.add_argument("--counter", type=int, default=0, help="Initial HOTP counter")
    pa.add_argument("--google", action="store_true", help="Mark as a Google account")
    pa.set_defaults(func=cmd_add)

    # list
    pl = sub.add_parser("list", help="List accounts with current TOTP codes")
    pl.set_defaults(func=cmd_list)

    # code
    pc = sub.add_parser("code", help="Generate the next code (advances HOTP counters)")
    _add_index_args(pc)
    pc.add_argument("--challenge", default=None, help="Challenge string (9-digit response)")
    pc.set_defaults(func=cmd_code)

    # check
    pk = sub.add_parser("check", help="Show the check code (counter 0) for an account")
    _add_index_args(pk)
    pk.set_defaults(func=cmd_check)

    # verify
    pv = sub.add_parser("verify", help="Verify a TOTP code")
    _add_index_args(pv)
    pv.add_argument("--code", required=True, help="OTP code to verify")
    pv.add_argument("--window", type=int, default=1, help="Allowed +/- step window")
    pv.set_defaults(func=cmd_verify)

    # rename
    pr = sub.add_parser("rename", help="Rename an account")
    _add_index_args(pr)
    pr.add_argument("--new-name", required=True)
    pr.set_defaults(func=cmd_rename)

    # delete
    pd = sub.add_parser("delete", help="Delete an account")
    _add_index_args(pd)
    pd.set_defaults(func=cmd_delete)

    # swap
    ps = sub.add_parser("swap", help="Swap the display order of two accounts")
    ps.add_argument("--first", required=True)
    ps.add_argument("--first-issuer", default=None)
    ps.add_argument("--second", required=True)
    ps.add_argument("--second-issuer", default=None)
    ps.set_defaults(func=cmd_swap)

    # watch
    pw = sub.add_parser("watch", help="Show TOTP codes in real time")
    pw.add_argument("--period-ms", type=int, default=1000, help="Countdown refresh period (ms)")
    pw.set_defaults(func=cmd_watch)

    # clock
    pt = sub.add_parser("clock", help="Show or set the clock correction (minutes)")
    pt.add_argument("--set-correction", type=int, default=None)
    pt.set_defaults(func=cmd_clock)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="[%(levelname)s] %(name)s: %(message)s")
    try:
        result = args.func(args)
    except OtpError as e:
        print(f"[!] {e}")
        return 1
    return result or 0


if __name__ == "__main__":
    sys.exit(main())
