"""
BACKEND PACKAGE INITIALIZATION FILE

Flask backend cho kho account OTP. Dùng create_app() để tạo app.
"""

from authenticator_backend.app import close_app, create_app

__all__ = ["create_app", "close_app"]
