"""
Tests for the structured logging setup.
"""

from mobile_payments.config import Settings
from mobile_payments.logging_config import app_context


def test_app_context_is_read_once():
    settings = Settings()
    app_name = settings.APP_NAME
    add_app_context = app_context(settings)
    settings.APP_NAME = "renamed afterwards"

    event = add_app_context(None, "info", {"event": "payment_created"})

    assert event == {
        "event": "payment_created",
        "app_name": app_name,
        "environment": settings.ENVIRONMENT,
    }
