"""
Notification Transports

Channel delivery behind the NotificationTransport protocol:
- EmailTransport: SMTP with STARTTLS
- LoggingTransport: writes the notification to the log (SYSTEM channel and
  any channel without a dedicated transport)
- ChannelRouter: picks the transport for a channel

SMS gateways and WebSocket push are deployment specific and plug in through
ChannelRouter.register().
"""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, Optional

import structlog

from pump_copilot.models.alert_models import NotificationChannel
from pump_copilot.repositories.protocols import NotificationTransport
from pump_copilot.settings import NotificationSettings

logger = structlog.get_logger()


class LoggingTransport:
    """Delivers by logging; always succeeds"""

    def send(
        self, channel: NotificationChannel, recipient: str, subject: str, body: str
    ) -> bool:
        logger.info(
            "notification_logged",
            channel=channel.value,
            recipient=recipient,
            subject=subject,
        )
        return True


class EmailTransport:
    """Send notifications via Email/SMTP"""

    def __init__(self, settings: NotificationSettings, timeout: float = 30.0):
        self.settings = settings
        self.timeout = timeout

    def send(
        self, channel: NotificationChannel, recipient: str, subject: str, body: str
    ) -> bool:
        if not self.settings.smtp_configured:
            logger.warning(
                "email_not_configured",
                hint="Set SMTP_SERVER, SMTP_USER, SMTP_PASSWORD in .env",
            )
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.settings.smtp_user
        msg["To"] = recipient
        msg.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(
                self.settings.smtp_server, self.settings.smtp_port, timeout=self.timeout
            ) as server:
                server.starttls()
                server.login(self.settings.smtp_user, self.settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_send_failed", recipient=recipient, error=str(e))
            return False

        logger.info("email_sent", recipient=recipient, subject=subject)
        return True


class ChannelRouter:
    """
    NotificationTransport that forwards to a per-channel transport.

    Example Usage:
        router = ChannelRouter()
        router.register(NotificationChannel.EMAIL, EmailTransport(settings))
        router.send(NotificationChannel.EMAIL, "ops@example.com", subject, body)
    """

    def __init__(
        self,
        transports: Optional[Dict[NotificationChannel, NotificationTransport]] = None,
        fallback: Optional[NotificationTransport] = None,
    ):
        self._transports: Dict[NotificationChannel, NotificationTransport] = dict(
            transports or {}
        )
        self.fallback = fallback or LoggingTransport()

    def register(self, channel: NotificationChannel, transport: NotificationTransport):
        self._transports[channel] = transport

    def transport_for(self, channel: NotificationChannel) -> NotificationTransport:
        return self._transports.get(channel, self.fallback)

    def send(
        self, channel: NotificationChannel, recipient: str, subject: str, body: str
    ) -> bool:
        return self.transport_for(channel).send(channel, recipient, subject, body)


def build_transport(settings: NotificationSettings) -> ChannelRouter:
    """Router with SMTP email when configured, logging for everything else"""
    router = ChannelRouter()
    if settings.smtp_configured:
        router.register(NotificationChannel.EMAIL, EmailTransport(settings))
    return router
