"""
base32.py — Encode/decode Base32 (RFC 4648) cho secret key.

Khác với base64.b32decode của thư viện chuẩn:
- Không bắt buộc padding '=', không phân biệt hoa/thường.
- Bỏ qua dấu '-' và khoảng trắng (user hay gõ secret theo nhóm 4 ký tự).
- Bit thừa ở cuối (không đủ 1 byte) bị bỏ qua, KHÔNG kiểm tra có bằng 0 hay không.
  Vì vậy "7777777777777777" và "77777777777777777" decode ra cùng một key;
  giữ nguyên hành vi này để các secret đã cấp vẫn dùng được.
"""

import re

from authenticator_core.exceptions import DecodingError

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
SHIFT = 5                       # mỗi ký tự = 5 bit
MASK = len(ALPHABET) - 1        # 0x1F
CHAR_MAP = {c: i for i, c in enumerate(ALPHABET)}

_SEPARATORS = re.compile(r"[\s-]+")


def decode(encoded: str) -> bytes:
    """
    Decode chuỗi Base32 -> bytes.

    Arguments:
        encoded: secret Base32, có thể chứa '-', khoảng trắng, '=' ở cuối

    Trả về:
        bytes: key đã decode (b"" nếu chuỗi rỗng sau khi làm sạch)

    Raises:
        DecodingError: nếu có ký tự ngoài bảng chữ cái A-Z, 2-7
    """
    encoded = _SEPARATORS.sub("", encoded.strip())
    # chỉ bỏ '=' ở cuối, '=' ở giữa vẫn là lỗi
    encoded = encoded.rstrip("=").upper()
    if not encoded:
        return b""

    out = bytearray()
    buffer = 0
    bits_left = 0
    for c in encoded:
        if c not in CHAR_MAP:
            raise DecodingError(f"Illegal character: {c}")
        buffer = (buffer << SHIFT) | CHAR_MAP[c]
        bits_left += SHIFT
        if bits_left >= 8:
            out.append((buffer >> (bits_left - 8)) & 0xFF)
            bits_left -= 8
            buffer &= (1 << bits_left) - 1
    return bytes(out)


def encode(data: bytes) -> str:
    """
    Encode bytes -> Base32, không thêm padding.

    Ví dụ: encode(b"foo") -> "MZXW6"
    """
    if not data:
        return ""

    out = []
    buffer = 0
    bits_left = 0
    for byte in data:
        buffer = (buffer << 8) | byte
        bits_left += 8
        while bits_left >= SHIFT:
            out.append(ALPHABET[(buffer >> (bits_left - SHIFT)) & MASK])
            bits_left -= SHIFT
        buffer &= (1 << bits_left) - 1
    if bits_left > 0:
        # phần bit còn lại được dồn sang trái, bù 0 bên phải
        out.append(ALPHABET[(buffer << (SHIFT - bits_left)) & MASK])
    return "".join(out)
