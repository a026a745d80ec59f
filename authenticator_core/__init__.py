"""
authenticator_core package
==========================

Sinh và xác minh passcode OTP (HOTP/TOTP) theo RFC 4226 & RFC 6238 cho nhiều account.

──────────────────────────────────────────────
Giải thuật cốt lõi
──────────────────────────────────────────────
- HOTP: code = Truncate(HMAC-SHA1(key=secret, msg=counter)) mod 10^digits
  → counter lưu trong database, tăng mỗi lần sinh mã.
- TOTP: HOTP với counter = floor((now - T0) / timestep), timestep mặc định 30 giây.
- Challenge-response: ký (counter || challenge), mã dài 9 chữ số.

──────────────────────────────────────────────
Các module
──────────────────────────────────────────────
- base32.py        : decode/encode Base32 "dễ dãi" (bỏ '-', khoảng trắng, padding)
- otp_core.py      : PasscodeGenerator + HMAC-SHA1 signer
- totp_counter.py  : thời điểm -> giá trị counter
- totp_clock.py    : đồng hồ có hiệu chỉnh lệch giờ (phút)
- otp_provider.py  : "mã kế tiếp cho account X" (dùng authenticator_db)
- countdown.py     : đếm ngược tới lần đổi mã kế tiếp
- otp_cli.py       : CLI

──────────────────────────────────────────────
Ví dụ sử dụng nhanh
──────────────────────────────────────────────
>>> from authenticator_core import PasscodeGenerator, get_signing_oracle
>>> PasscodeGenerator(get_signing_oracle("7777777777777777")).generate_response_code(0)
'724477'
"""

from authenticator_core.exceptions import (
    CryptoFailure,
    DecodingError,
    DuplicateLimitError,
    IdUpdateFailure,
    NoSuchAccount,
    OtpError,
    StoreOpenFailure,
    UnsupportedOperation,
)
from authenticator_core.otp_core import HmacSha1Signer, PasscodeGenerator, get_signing_oracle
from authenticator_core.totp_counter import TotpCounter

__all__ = [
    "CryptoFailure",
    "DecodingError",
    "DuplicateLimitError",
    "HmacSha1Signer",
    "IdUpdateFailure",
    "NoSuchAccount",
    "OtpError",
    "PasscodeGenerator",
    "StoreOpenFailure",
    "TotpCounter",
    "UnsupportedOperation",
    "get_signing_oracle",
]
