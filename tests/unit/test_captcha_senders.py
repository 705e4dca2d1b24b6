import json

import pytest
from flask import Flask

from gatekeeper.core.captcha import (
    Challenge,
    ImageChallengeSender,
    ResendThrottle,
    SendError,
    SmsChallengeSender,
    StorageError,
    ThrottleExceeded,
)
from gatekeeper.core.messaging import DispatchError, LoggingMessageDispatcher


@pytest.fixture()
def app():
    return Flask(__name__)


class _FailingDispatcher:
    def send(self, target, template_id, params):
        raise DispatchError("gateway down")


def test_throttle_allows_first_send_and_blocks_second(fake_redis):
    throttle = ResendThrottle(fake_redis, "sms", 60)

    throttle.acquire("13800000000")
    with pytest.raises(ThrottleExceeded) as excinfo:
        throttle.acquire("13800000000")

    assert 1 <= excinfo.value.retry_after <= 60
    assert fake_redis.keys() == ["captcha:throttle:sms:13800000000"]


def test_throttle_is_per_target(fake_redis):
    throttle = ResendThrottle(fake_redis, "sms", 60)

    throttle.acquire("13800000000")
    throttle.acquire("13900000000")


def test_throttle_reopens_after_interval(fake_redis):
    throttle = ResendThrottle(fake_redis, "sms", 60)

    throttle.acquire("13800000000")
    fake_redis.advance(61)
    throttle.acquire("13800000000")


def test_release_allows_immediate_resend(fake_redis):
    throttle = ResendThrottle(fake_redis, "sms", 60)

    throttle.acquire("13800000000")
    throttle.release("13800000000")
    throttle.acquire("13800000000")


def test_zero_interval_disables_throttle(fake_redis):
    throttle = ResendThrottle(fake_redis, "image", 0)

    throttle.acquire("uuid-1")
    throttle.acquire("uuid-1")
    assert fake_redis.keys() == []


def test_throttle_store_failure_raises_storage_error(broken_redis):
    with pytest.raises(StorageError):
        ResendThrottle(broken_redis, "sms", 60).acquire("13800000000")


def test_image_sender_writes_png_with_no_cache_headers(app, fake_redis):
    sender = ImageChallengeSender(ResendThrottle(fake_redis, "image", 0))

    with app.test_request_context():
        response = sender.send("uuid-1", Challenge(code="AB12", expire_at=0, payload=b"\x89PNGdata"))

    assert response.mimetype == "image/png"
    assert response.get_data() == b"\x89PNGdata"
    assert response.headers["Cache-Control"] == "no-store, no-cache, must-revalidate"
    assert response.headers["Pragma"] == "no-cache"
    assert response.headers["Expires"] == "0"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_image_sender_without_payload_fails(app, fake_redis):
    sender = ImageChallengeSender(ResendThrottle(fake_redis, "image", 0))

    with app.test_request_context(), pytest.raises(SendError):
        sender.send("uuid-1", Challenge(code="AB12", expire_at=0))


def test_sms_sender_dispatches_code_and_mobile(app, fake_redis):
    dispatcher = LoggingMessageDispatcher()
    sender = SmsChallengeSender(ResendThrottle(fake_redis, "sms", 60), dispatcher, "SMS_LOGIN")

    with app.test_request_context():
        response = sender.send("13800000000", Challenge(code="123456", expire_at=0, target="13800000000"))

    assert dispatcher.sent == [("13800000000", "SMS_LOGIN", {"code": "123456", "mobile": "13800000000"})]
    assert json.loads(response.get_data())["message"] == "Verification code sent"


def test_sms_sender_reports_remaining_lifetime(app, fake_redis):
    sender = SmsChallengeSender(
        ResendThrottle(fake_redis, "sms", 60), LoggingMessageDispatcher(), "SMS_LOGIN", clock=lambda: 1_000.0,
    )

    with app.test_request_context():
        response = sender.send("13800000000", Challenge(code="123456", expire_at=1_060.0))
        expired = sender.send("13800000001", Challenge(code="654321", expire_at=990.0))

    assert json.loads(response.get_data())["expires_in"] == 60
    assert json.loads(expired.get_data())["expires_in"] == 0


def test_sms_dispatch_error_becomes_send_error(app, fake_redis):
    sender = SmsChallengeSender(ResendThrottle(fake_redis, "sms", 60), _FailingDispatcher(), "SMS_LOGIN")

    with app.test_request_context(), pytest.raises(SendError):
        sender.send("13800000000", Challenge(code="123456", expire_at=0))
