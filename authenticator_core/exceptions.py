"""
exceptions.py — Các lỗi nghiệp vụ của hệ thống OTP.

Tất cả kế thừa từ OtpError để caller (CLI / Flask routes) có thể bắt chung một chỗ.
Lỗi tham số (digits ngoài khoảng, time step <= 0, ...) vẫn dùng ValueError như Python chuẩn.
"""


class OtpError(Exception):
    """Base class cho mọi lỗi của authenticator."""


class DecodingError(OtpError):
    """Chuỗi Base32 không hợp lệ (ký tự ngoài bảng chữ cái RFC 4648)."""


class CryptoFailure(OtpError):
    """Không ký được (secret rỗng / key bị từ chối / thuật toán không có)."""


class NoSuchAccount(OtpError):
    """Không tìm thấy account theo (name, issuer)."""


class DuplicateLimitError(OtpError):
    """Quá nhiều account cùng tên mà không có issuer."""


class UnsupportedOperation(OtpError):
    """Thao tác không được phép, ví dụ đổi tên account nội bộ Google."""


class StoreOpenFailure(OtpError):
    """
    Không mở được database sau nhiều lần thử.

    Attributes:
        filesystem_info: thông tin stat của file / thư mục, dùng khi báo lỗi cho support
    """

    def __init__(self, message: str, filesystem_info: str = ""):
        super().__init__(message)
        self.filesystem_info = filesystem_info

    def __str__(self):
        base = super().__str__()
        if self.filesystem_info:
            return f"{base} [{self.filesystem_info}]"
        return base


class IdUpdateFailure(OtpError):
    """swap_id thất bại; transaction đã được rollback."""
