"""
OTP AUTHENTICATOR API ROUTES - FLASK BLUEPRINT

Đây là file chứa các API endpoints cho kho account OTP (TOTP/HOTP).
Mọi request/response đều là JSON; account được chỉ định bằng cặp (name, issuer).

VÍ DỤ:
curl http://localhost:5000/api/accounts
curl -X POST http://localhost:5000/api/accounts -H "Content-Type: application/json" \
     -d '{"name": "alice@example.com", "issuer": "Example", "secret": "JBSWY3DPEHPK3PXP"}'
curl -X POST http://localhost:5000/api/accounts/code -H "Content-Type: application/json" \
     -d '{"name": "alice@example.com", "issuer": "Example"}'
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest, HTTPException

from authenticator_core import base32
from authenticator_core.exceptions import (
    CryptoFailure,
    DecodingError,
    DuplicateLimitError,
    IdUpdateFailure,
    NoSuchAccount,
    OtpError,
    UnsupportedOperation,
)
from authenticator_core.otp_provider import OtpProvider
from authenticator_core.totp_clock import millis_to_seconds, seconds_to_millis
from authenticator_db.db_manager import AccountIndex, OtpType

logger = logging.getLogger(__name__)

# Blueprint giống như một bộ router con trong Flask
otp_bp = Blueprint("otp", __name__, url_prefix="/api")

# mapping lỗi nghiệp vụ -> HTTP status
ERROR_STATUS = {
    DecodingError: 400,
    UnsupportedOperation: 403,
    NoSuchAccount: 404,
    DuplicateLimitError: 409,
    CryptoFailure: 500,
    IdUpdateFailure: 500,
}


def get_provider() -> OtpProvider:
    """OtpProvider được tạo trong create_app() và gắn vào app.extensions."""
    return current_app.extensions["otp_provider"]


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


def _index_from(data: dict) -> AccountIndex:
    name = data.get("name")
    if not isinstance(name, str):
        raise BadRequest("Field 'name' is required")
    return AccountIndex.from_strings(name, data.get("issuer"))


def _parse_type(value) -> OtpType:
    if value is None:
        return OtpType.TOTP
    try:
        return OtpType[str(value).upper()]
    except KeyError:
        raise BadRequest(f"Unknown OTP type: {value}")


@otp_bp.errorhandler(OtpError)
def handle_otp_error(e):
    status = ERROR_STATUS.get(type(e), 500)
    if status >= 500:
        logger.error("[ERROR] %s: %s", type(e).__name__, e)
    return jsonify({"error": str(e), "type": type(e).__name__}), status


@otp_bp.errorhandler(HTTPException)
def handle_http_error(e):
    return jsonify({"error": e.description}), e.code


@otp_bp.route("/accounts", methods=["GET"])
def list_accounts():
    """
    DANH SÁCH ACCOUNT + MÃ TOTP HIỆN TẠI

      curl http://localhost:5000/api/accounts

    Account HOTP có "pin": null, dùng /api/accounts/code để sinh mã (tăng counter).
    """
    infos = get_provider().get_pin_infos()
    return jsonify({"accounts": [info.to_dict() for info in infos]})


@otp_bp.route("/accounts", methods=["POST"])
def add_account():
    """
    THÊM ACCOUNT

    Body: name, secret (Base32), type ("totp"|"hotp"), counter, google (bool), issuer
    """
    data = _json_body()
    index = _index_from(data)
    secret = data.get("secret")
    if not isinstance(secret, str) or not secret:
        raise BadRequest("Field 'secret' is required")
    base32.decode(secret)  # DecodingError -> 400
    otp_type = _parse_type(data.get("type"))
    counter = data.get("counter")
    if counter is not None and (isinstance(counter, bool) or not isinstance(counter, int)):
        raise BadRequest("Field 'counter' must be an integer")
    google = data.get("google")
    if google is not None and not isinstance(google, bool):
        raise BadRequest("Field 'google' must be a boolean")

    db = get_provider().account_db
    will_overwrite = db.add_will_overwrite(index)
    added = db.add(index.name, secret, otp_type, counter=counter,
                   google_account=google, issuer=index.issuer)
    logger.info("[INFO] Added account %s (overwrite=%s)", added, will_overwrite)
    return jsonify({
        "name": added.name,
        "issuer": added.issuer,
        "display_name": added.display_name,
        "overwritten": will_overwrite,
    }), 201


@otp_bp.route("/accounts/overwrite", methods=["GET"])
def add_will_overwrite():
    """
      curl "http://localhost:5000/api/accounts/overwrite?name=bob@x.com&issuer=Yahoo"
    """
    name = request.args.get("name")
    if name is None:
        raise BadRequest("Query parameter 'name' is required")
    index = AccountIndex.from_strings(name, request.args.get("issuer"))
    return jsonify({"will_overwrite": get_provider().account_db.add_will_overwrite(index)})


@otp_bp.route("/accounts/code", methods=["POST"])
def next_code():
    """
    SINH MÃ KẾ TIẾP

    Body: name, issuer, challenge (tuỳ chọn). Có challenge -> mã 9 chữ số.
    Lưu ý: với HOTP mỗi lần gọi là counter tăng 1.
    """
    data = _json_body()
    index = _index_from(data)
    challenge = data.get("challenge")
    if challenge is not None and not isinstance(challenge, str):
        raise BadRequest("Field 'challenge' must be a string")
    code = get_provider().respond_to_challenge(index, challenge)
    return jsonify({"name": index.name, "issuer": index.issuer, "code": code})


@otp_bp.route("/accounts/check_code", methods=["POST"])
def check_code():
    data = _json_body()
    index = _index_from(data)
    return jsonify({"code": get_provider().get_check_code(index)})


@otp_bp.route("/accounts/verify", methods=["POST"])
def verify_code():
    """
    XÁC MINH MÃ TOTP

    Body: name, issuer, code, window (mặc định 1 -> chấp nhận ±1 interval)
    """
    data = _json_body()
    index = _index_from(data)
    code = data.get("code")
    if not isinstance(code, str):
        raise BadRequest("Field 'code' is required")
    try:
        window = int(data.get("window", 1))
    except (TypeError, ValueError):
        raise BadRequest("Field 'window' must be an integer")
    valid = get_provider().verify_totp_code(index, code, window, window)
    return jsonify({"valid": valid})


@otp_bp.route("/accounts/rename", methods=["POST"])
def rename_account():
    data = _json_body()
    index = _index_from(data)
    new_name = data.get("new_name")
    if not isinstance(new_name, str) or not new_name:
        raise BadRequest("Field 'new_name' is required")
    if not get_provider().account_db.rename(index, new_name):
        return jsonify({"success": False,
                        "error": "Target name already exists or account not found"}), 409
    return jsonify({"success": True, "name": new_name, "issuer": index.issuer})


@otp_bp.route("/accounts/delete", methods=["POST"])
def delete_account():
    data = _json_body()
    index = _index_from(data)
    db = get_provider().account_db
    if not db.exists(index):
        raise NoSuchAccount(f"No account found for {index}")
    db.delete(index)
    return jsonify({"success": True})


@otp_bp.route("/accounts/swap", methods=["POST"])
def swap_accounts():
    """
    ĐỔI THỨ TỰ HAI ACCOUNT

    Body: {"first": {"name": ..., "issuer": ...}, "second": {"name": ..., "issuer": ...}}
    """
    data = _json_body()
    first, second = data.get("first"), data.get("second")
    if not isinstance(first, dict) or not isinstance(second, dict):
        raise BadRequest("Fields 'first' and 'second' are required")
    get_provider().account_db.swap_id(_index_from(first), _index_from(second))
    return jsonify({"success": True})


@otp_bp.route("/countdown", methods=["GET"])
def countdown():
    """
    THỜI GIAN CÒN LẠI TỚI MÃ TOTP KẾ TIẾP

      curl http://localhost:5000/api/countdown
    """
    provider = get_provider()
    counter = provider.totp_counter
    now = provider.totp_clock.now_millis()
    value = counter.get_value_at_time(millis_to_seconds(now))
    remaining = seconds_to_millis(counter.get_value_start_time(value + 1)) - now
    return jsonify({
        "counter_value": value,
        "remaining_millis": remaining,
        "period": counter.time_step,
    })
