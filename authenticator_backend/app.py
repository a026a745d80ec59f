"""
FLASK APP ENTRY POINT - OTP AUTHENTICATOR BACKEND
==================================================

File này tạo Flask app, cấu hình CORS, mở kho account và đăng ký API routes.

CÁC TÍNH NĂNG CHÍNH
- create_app() là application factory: mỗi app sở hữu một AccountDb riêng
  (không có database global), đóng bằng close_app()
- CORS enabled cho frontend integration
- Trang chủ trả về danh sách endpoints
"""

from flask import Flask, jsonify
from flask_cors import CORS

from authenticator_core import config
from authenticator_core.otp_provider import OtpProvider
from authenticator_core.totp_clock import TotpClock
from authenticator_db.db_manager import AccountDb
from authenticator_backend.routes import otp_bp


def create_app(test_config: dict = None) -> Flask:
    """
    Tạo Flask app.

    Arguments:
        test_config: override config, các key dùng tới:
            DATABASE_PATH   : file SQLite
            PREFERENCES_PATH: preferences.json (time correction)
            WALL_CLOCK      : object có now_millis(), dùng cho test
    """
    app = Flask(__name__)
    app.config.from_mapping(
        DATABASE_PATH=config.get_database_path(),
        PREFERENCES_PATH=config.get_preferences_path(),
        WALL_CLOCK=None,
    )
    if test_config:
        app.config.update(test_config)

    # Cho phép frontend (chạy trên domain/port khác) gọi API đến backend
    CORS(app)

    account_db = AccountDb(app.config["DATABASE_PATH"])
    clock = TotpClock(config.Preferences(app.config["PREFERENCES_PATH"]),
                      wall_clock=app.config["WALL_CLOCK"])
    app.extensions["otp_provider"] = OtpProvider(account_db, clock)

    app.register_blueprint(otp_bp)

    @app.route("/", methods=["GET"])
    def index():
        """TRANG CHỦ API - liệt kê các endpoint."""
        return jsonify({
            "service": "otp-authenticator",
            "endpoints": sorted(
                f"{','.join(sorted(rule.methods - {'HEAD', 'OPTIONS'}))} {rule.rule}"
                for rule in app.url_map.iter_rules()
                if rule.endpoint != "static"
            ),
        })

    return app


def close_app(app: Flask) -> None:
    app.extensions["otp_provider"].account_db.close()


# KHỞI CHẠY SERVER
# Chỉ chạy khi file được execute trực tiếp (không phải import)
if __name__ == "__main__":
    # chỉ lắng nghe localhost: API này trả về mã OTP của user
    create_app().run(debug=True, host="127.0.0.1", port=5000)
