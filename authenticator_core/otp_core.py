#!/usr/bin/env python3
"""
otp_core.py — Core thuật toán passcode (RFC 4226 dynamic truncation).

Mục tiêu:
- PasscodeGenerator: nhận một "signer" (sign(bytes) -> bytes) và độ dài mã L,
  sinh mã từ state 64-bit, có hỗ trợ challenge-response.
- Signer là Protocol: production dùng HmacSha1Signer, test có thể thay bằng signer giả.
- Không chứa I/O, không đọc database: chỉ tính toán thuần.

Lưu ý bảo mật:
- So sánh mã (verify_*) là so sánh chuỗi thường, không constant-time;
  mã OTP sống rất ngắn nên chấp nhận được.
"""

import hashlib
import hmac
import struct
from typing import Optional, Protocol

from authenticator_core import base32
from authenticator_core.config import PIN_LENGTH

MAX_PASSCODE_LENGTH = 9
ADJACENT_INTERVALS = 1      # cửa sổ mặc định ±1 interval
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


class Signer(Protocol):
    """Bất kỳ object nào có sign(data) -> bytes (HMAC, HSM, test double, ...)."""

    def sign(self, data: bytes) -> bytes:
        ...


class HmacSha1Signer:
    """
    Signer mặc định: HMAC-SHA1 với key đã decode từ Base32.

    Arguments:
        key: raw key bytes
    """

    def __init__(self, key: bytes):
        self._key = key

    def sign(self, data: bytes) -> bytes:
        return hmac.new(self._key, data, hashlib.sha1).digest()


def get_signing_oracle(secret_b32: str) -> HmacSha1Signer:
    """
    Decode secret Base32 và trả về signer HMAC-SHA1 tương ứng.

    Raises:
        DecodingError: secret không phải Base32 hợp lệ
    """
    return HmacSha1Signer(base32.decode(secret_b32))


# --- RFC helpers -----------------------------------------------------------
def int_to_bytes(i: int) -> bytes:
    """
    Chuyển state (counter) sang 8-byte big-endian như RFC4226 yêu cầu.

    Số âm (vd. interval trước start_time) được ghi theo bù 2, giống kiểu long 64-bit.
    Ví dụ: int_to_bytes(1) -> b'\x00\x00\x00\x00\x00\x00\x00\x01'
    """
    return struct.pack(">Q", i & _UINT64_MASK)


def dynamic_truncate(hmac_digest: bytes) -> int:
    """
    Áp dụng dynamic truncation theo RFC4226.

    - offset = last_byte & 0x0F
    - đọc 4 bytes big-endian từ offset, clear sign bit (& 0x7FFFFFFF)
    - trả về integer 31-bit
    """
    offset = hmac_digest[-1] & 0x0F
    (value,) = struct.unpack(">i", hmac_digest[offset:offset + 4])
    return value & 0x7FFFFFFF


class PasscodeGenerator:
    """
    Sinh và xác minh passcode từ một signer.

    Arguments:
        signer: object có sign(bytes) -> bytes
        pass_code_length: số chữ số L (1..9), mặc định 6

    Raises:
        ValueError: nếu pass_code_length ngoài khoảng 1..9
    """

    def __init__(self, signer: Signer, pass_code_length: int = PIN_LENGTH):
        if not 1 <= pass_code_length <= MAX_PASSCODE_LENGTH:
            raise ValueError(
                f"PassCodeLength must be between 1 and {MAX_PASSCODE_LENGTH} digits.")
        self.signer = signer
        self.code_length = pass_code_length

    def _pad_output(self, value: int) -> str:
        return str(value).zfill(self.code_length)

    def generate_response_code(self, state: int, challenge: Optional[bytes] = None) -> str:
        """
        Sinh mã cho state 64-bit.

        Nếu có challenge: message = state (8 byte) || challenge.
        challenge=None cho kết quả giống hệt khi không truyền.
        """
        value = int_to_bytes(state)
        if challenge is not None:
            value += challenge
        return self.generate_response_code_from_bytes(value)

    def generate_response_code_from_bytes(self, challenge: bytes) -> str:
        """Ký nguyên khối bytes (không tự thêm state) rồi truncate."""
        digest = self.signer.sign(challenge)
        truncated = dynamic_truncate(digest)
        return self._pad_output(truncated % (10 ** self.code_length))

    def verify_response_code(self, state: int, response: str) -> bool:
        return self.generate_response_code(state) == response

    def verify_timeout_code(self, timeout_code: str, current_interval: int,
                            past_intervals: int = ADJACENT_INTERVALS,
                            future_intervals: int = ADJACENT_INTERVALS) -> bool:
        """
        Xác minh mã theo cửa sổ thời gian (chịu được lệch đồng hồ).

        Chấp nhận nếu mã khớp một interval trong
        [current - past_intervals, current + future_intervals] (bao gồm hai đầu).
        Cửa sổ âm được coi là 0.
        """
        past_intervals = max(past_intervals, 0)
        future_intervals = max(future_intervals, 0)
        for interval in range(current_interval - past_intervals,
                              current_interval + future_intervals + 1):
            if self.generate_response_code(interval) == timeout_code:
                return True
        return False
