"""
Tests for notification transports
"""

import smtplib
from unittest.mock import MagicMock, patch

from pump_copilot.models.alert_models import NotificationChannel
from pump_copilot.services.transports import (
    ChannelRouter,
    EmailTransport,
    LoggingTransport,
    build_transport,
)
from pump_copilot.settings import NotificationSettings
from tests.fixtures.alert_fixtures import RecordingTransport


def smtp_settings(**overrides):
    values = dict(
        smtp_server="smtp.example.com",
        smtp_port=587,
        smtp_user="alerts@example.com",
        smtp_password="secret",
    )
    values.update(overrides)
    return NotificationSettings(**values)


class TestEmailTransport:

    def test_not_configured(self):
        transport = EmailTransport(smtp_settings(smtp_server=""))
        assert transport.send(NotificationChannel.EMAIL, "ops@example.com", "s", "b") is False

    @patch("pump_copilot.services.transports.smtplib.SMTP")
    def test_send(self, mock_smtp):
        server = MagicMock()
        mock_smtp.return_value.__enter__.return_value = server

        delivered = EmailTransport(smtp_settings()).send(
            NotificationChannel.EMAIL, "ops@example.com", "Pump alert", "body"
        )

        assert delivered is True
        mock_smtp.assert_called_once_with("smtp.example.com", 587, timeout=30.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("alerts@example.com", "secret")
        message = server.send_message.call_args[0][0]
        assert message["To"] == "ops@example.com"
        assert message["Subject"] == "Pump alert"

    @patch("pump_copilot.services.transports.smtplib.SMTP")
    def test_smtp_error(self, mock_smtp):
        mock_smtp.return_value.__enter__.return_value.login.side_effect = (
            smtplib.SMTPAuthenticationError(535, b"bad credentials")
        )
        delivered = EmailTransport(smtp_settings()).send(
            NotificationChannel.EMAIL, "ops@example.com", "s", "b"
        )
        assert delivered is False

    @patch("pump_copilot.services.transports.smtplib.SMTP", side_effect=OSError("refused"))
    def test_connection_error(self, mock_smtp):
        assert EmailTransport(smtp_settings()).send(
            NotificationChannel.EMAIL, "ops@example.com", "s", "b"
        ) is False


class TestChannelRouter:

    def test_routes_by_channel(self):
        email = RecordingTransport()
        fallback = RecordingTransport()
        router = ChannelRouter({NotificationChannel.EMAIL: email}, fallback)

        router.send(NotificationChannel.EMAIL, "ops@example.com", "s", "b")
        router.send(NotificationChannel.SMS, "+15550100", "s", "b")

        assert len(email.sent) == 1
        assert fallback.sent[0][0] == NotificationChannel.SMS

    def test_default_fallback_logs(self):
        router = ChannelRouter()
        assert isinstance(router.transport_for(NotificationChannel.WEBSOCKET), LoggingTransport)
        assert router.send(NotificationChannel.SYSTEM, "SYSTEM", "s", "b") is True

    def test_build_transport(self):
        configured = build_transport(smtp_settings())
        unconfigured = build_transport(smtp_settings(smtp_password=""))
        assert isinstance(configured.transport_for(NotificationChannel.EMAIL), EmailTransport)
        assert isinstance(unconfigured.transport_for(NotificationChannel.EMAIL), LoggingTransport)
