"""
Webhook signature validation tests.
These protect the authentication boundary for inbound consent changes.
"""
from unittest.mock import MagicMock, patch

from twilio.request_validator import RequestValidator

from revive.utils.webhook_signatures import get_webhook_url, validate_twilio_signature

URL = "https://api.outboundrevive.com/api/v1/webhook/twilio/sms/acct"
PARAMS = {"From": "+15551234567", "Body": "STOP"}


class TestValidateTwilioSignature:
    """Test Twilio HMAC-SHA1 signature validation."""

    def test_missing_signature_returns_false(self):
        assert validate_twilio_signature("test_token", "", URL, PARAMS) is False

    def test_none_signature_returns_false(self):
        assert validate_twilio_signature("test_token", None, URL, PARAMS) is False

    def test_real_signature_round_trip(self):
        signature = RequestValidator("test_token").compute_signature(URL, PARAMS)
        assert validate_twilio_signature("test_token", signature, URL, PARAMS) is True

    def test_tampered_params_rejected(self):
        signature = RequestValidator("test_token").compute_signature(URL, PARAMS)
        tampered = dict(PARAMS, Body="YES")
        assert validate_twilio_signature("test_token", signature, URL, tampered) is False

    def test_wrong_token_rejected(self):
        signature = RequestValidator("other_token").compute_signature(URL, PARAMS)
        assert validate_twilio_signature("test_token", signature, URL, PARAMS) is False

    def test_validator_error_returns_false(self):
        with patch("twilio.request_validator.RequestValidator") as mock_cls:
            mock_cls.return_value.validate.side_effect = RuntimeError("boom")
            assert validate_twilio_signature("test_token", "sig", URL, PARAMS) is False


class TestGetWebhookUrl:
    def _request(self, headers, scheme="http", path="/hook", query=""):
        request = MagicMock()
        request.headers = headers
        request.url.scheme = scheme
        request.url.path = path
        request.url.query = query
        return request

    def test_direct(self):
        request = self._request({"host": "localhost:8000"})
        assert get_webhook_url(request) == "http://localhost:8000/hook"

    def test_behind_proxy(self):
        request = self._request({
            "host": "internal:8000",
            "x-forwarded-proto": "https",
            "x-forwarded-host": "api.outboundrevive.com",
        })
        assert get_webhook_url(request) == "https://api.outboundrevive.com/hook"

    def test_keeps_query(self):
        request = self._request({"host": "h"}, query="a=1")
        assert get_webhook_url(request) == "http://h/hook?a=1"
