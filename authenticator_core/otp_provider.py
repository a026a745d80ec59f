"""
otp_provider.py — PasscodeService: ghép AccountDb + TotpCounter + TotpClock + PasscodeGenerator.

- TOTP: state = counter.get_value_at_time(now_seconds)
- HOTP: increment_counter() trong DB rồi dùng counter mới làm state.
  Mỗi lần gọi get_next_code() với account HOTP là counter TĂNG: chỉ gọi khi user
  thực sự muốn mã mới (list / refresh UI nên dùng get_pin_infos()).
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from authenticator_core.config import DEFAULT_INTERVAL, PIN_LENGTH, REFLECTIVE_PIN_LENGTH
from authenticator_core.exceptions import CryptoFailure, DecodingError, NoSuchAccount
from authenticator_core.otp_core import PasscodeGenerator, get_signing_oracle
from authenticator_core.totp_clock import TotpClock, millis_to_seconds
from authenticator_core.totp_counter import TotpCounter
from authenticator_db.db_manager import AccountDb, AccountIndex, OtpType

logger = logging.getLogger(__name__)


@dataclass
class PinInfo:
    """Một dòng trong danh sách account hiển thị cho user."""

    index: AccountIndex
    pin: Optional[str]
    is_hotp: bool
    hotp_code_generation_allowed: bool = True

    def to_dict(self) -> dict:
        return {
            "name": self.index.name,
            "issuer": self.index.issuer,
            "display_name": self.index.display_name,
            "pin": self.pin,
            "is_hotp": self.is_hotp,
            "hotp_code_generation_allowed": self.hotp_code_generation_allowed,
        }


class OtpProvider:
    """
    Arguments:
        account_db: AccountDb đã mở
        totp_clock: TotpClock (đồng hồ có hiệu chỉnh)
        interval: TOTP time step (giây), mặc định 30
    """

    def __init__(self, account_db: AccountDb, totp_clock: TotpClock,
                 interval: int = DEFAULT_INTERVAL):
        self.account_db = account_db
        self._totp_clock = totp_clock
        self._totp_counter = TotpCounter(interval)

    @property
    def totp_counter(self) -> TotpCounter:
        return self._totp_counter

    @property
    def totp_clock(self) -> TotpClock:
        return self._totp_clock

    def enumerate_accounts(self) -> List[AccountIndex]:
        return self.account_db.list_accounts()

    def get_next_code(self, index: AccountIndex) -> str:
        return self._get_current_code(index, None)

    def respond_to_challenge(self, index: AccountIndex, challenge: Optional[str]) -> str:
        """
        Mã 9 chữ số cho challenge (UTF-8), hoặc mã thường nếu challenge là None.

        Raises:
            NoSuchAccount, CryptoFailure
        """
        if challenge is None:
            return self._get_current_code(index, None)
        return self._get_current_code(index, challenge.encode("utf-8"))

    def _current_interval(self) -> int:
        return self._totp_counter.get_value_at_time(
            millis_to_seconds(self._totp_clock.now_millis()))

    def _load_secret(self, index: AccountIndex) -> str:
        if index is None or not self.account_db.exists(index):
            raise NoSuchAccount(f"No account found for {index}")
        secret = self.account_db.get_secret(index)
        if not secret:
            raise CryptoFailure("Null or empty secret")
        return secret

    def _get_current_code(self, index: AccountIndex, challenge: Optional[bytes]) -> str:
        secret = self._load_secret(index)

        if self.account_db.get_type(index) == OtpType.HOTP:
            self.account_db.increment_counter(index)
            otp_state = self.account_db.get_counter(index)
        else:
            otp_state = self._current_interval()

        return self.compute_pin(secret, otp_state, challenge)

    def compute_pin(self, secret: str, otp_state: int, challenge: Optional[bytes] = None) -> str:
        """
        Tính mã cho secret Base32 tại otp_state.

        Raises:
            CryptoFailure: secret rỗng hoặc không decode được
        """
        if not secret:
            raise CryptoFailure("Null or empty secret")
        try:
            signer = get_signing_oracle(secret)
        except DecodingError as e:
            logger.error("Could not decode secret: %s", e)
            raise CryptoFailure(f"Crypto failure: {e}") from e

        length = PIN_LENGTH if challenge is None else REFLECTIVE_PIN_LENGTH
        generator = PasscodeGenerator(signer, length)
        return generator.generate_response_code(otp_state, challenge)

    def get_check_code(self, index: AccountIndex) -> str:
        """Mã tại state 0: để user so với mã do nhà cung cấp hiển thị. Không đổi counter."""
        return self.compute_pin(self._load_secret(index), 0)

    def verify_totp_code(self, index: AccountIndex, code: str,
                         past_intervals: int = 1, future_intervals: int = 1) -> bool:
        secret = self._load_secret(index)
        try:
            generator = PasscodeGenerator(get_signing_oracle(secret), PIN_LENGTH)
        except DecodingError as e:
            raise CryptoFailure(f"Crypto failure: {e}") from e
        return generator.verify_timeout_code(code, self._current_interval(),
                                             past_intervals, future_intervals)

    def get_pin_infos(self) -> List[PinInfo]:
        """
        Danh sách account kèm mã hiện tại.

        TOTP được tính sẵn; HOTP để pin=None (chỉ sinh khi user bấm, vì sinh là tăng counter).
        """
        infos = []
        interval = self._current_interval()
        for index in self.enumerate_accounts():
            if self.account_db.get_type(index) == OtpType.HOTP:
                infos.append(PinInfo(index, None, True))
                continue
            try:
                pin = self.compute_pin(self.account_db.get_secret(index), interval)
            except CryptoFailure as e:
                logger.warning("Could not compute code for %s: %s", index, e)
                pin = None
            infos.append(PinInfo(index, pin, False))
        return infos
