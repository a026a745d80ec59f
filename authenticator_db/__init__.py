"""
DATABASE PACKAGE

Kho account OTP trên SQLite (bảng `accounts`), gồm tạo bảng, migrate schema cũ
và các quy tắc định danh account theo (name, issuer).
"""

from authenticator_db.db_manager import AccountDb, AccountIndex, OtpType

__all__ = ["AccountDb", "AccountIndex", "OtpType"]
