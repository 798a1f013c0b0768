"""Tests for Sentry setup and the before_send header filter."""

from unittest.mock import patch

from services.transit.middleware.sentry import _strip_sensitive_data, setup_sentry


class TestStripSensitiveData:
    def test_filters_request_headers(self):
        event = {"request": {"headers": {"Authorization": "Bearer x", "Accept": "json"}}}

        result = _strip_sensitive_data(event, {})

        assert result["request"]["headers"] == {"Authorization": "[FILTERED]", "Accept": "json"}

    def test_filters_breadcrumb_headers(self):
        event = {"breadcrumbs": {"values": [{"data": {"headers": {"cookie": "s=1"}}}]}}

        result = _strip_sensitive_data(event, {})

        assert result["breadcrumbs"]["values"][0]["data"]["headers"]["cookie"] == "[FILTERED]"

    def test_event_without_request(self):
        assert _strip_sensitive_data({"message": "boom"}, {}) == {"message": "boom"}


class TestSetupSentry:
    def test_disabled_without_dsn(self):
        with patch("services.transit.middleware.sentry.settings") as settings, \
             patch("services.transit.middleware.sentry.sentry_sdk.init") as init:
            settings.sentry_dsn = ""
            assert setup_sentry() is False
        init.assert_not_called()

    def test_enabled_with_dsn(self):
        with patch("services.transit.middleware.sentry.settings") as settings, \
             patch("services.transit.middleware.sentry.sentry_sdk.init") as init:
            settings.sentry_dsn = "https://key@sentry.example/1"
            settings.environment = "staging"
            settings.app_name = "transit-core"
            settings.app_version = "0.1.0"
            settings.sentry_traces_sample_rate = 0.1
            assert setup_sentry() is True

        kwargs = init.call_args.kwargs
        assert kwargs["release"] == "transit-core@0.1.0"
        assert kwargs["before_send"] is _strip_sensitive_data
        assert kwargs["send_default_pii"] is False
