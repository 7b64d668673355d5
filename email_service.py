import logging
import smtplib
import time
from email.message import EmailMessage
from typing import Optional

import config

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


OTP_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #ddd; border-radius: 8px;">
  <h2 style="color: #333; text-align: center; margin-bottom: 30px;">Your OTP Code</h2>
  <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; text-align: center; margin-bottom: 20px;">
    <h1 style="color: #007bff; font-size: 32px; letter-spacing: 8px; margin: 0;">{otp}</h1>
  </div>
  <p style="color: #666; font-size: 14px;"><strong>Purpose:</strong> {purpose}</p>
  <p style="color: #666; font-size: 14px;"><strong>This OTP is valid for {minutes} minutes.</strong></p>
  <p style="color: #666; font-size: 14px;">If you didn't request this OTP, please ignore this email.</p>
  <hr style="border: none; border-top: 1px solid #ddd; margin: 20px 0;">
  <p style="color: #999; font-size: 12px; text-align: center;">This is an automated message from your LMS Platform.</p>
</div>
"""

OTP_TEXT = (
    "Your OTP Code: {otp}\n\n"
    "Purpose: {purpose}\n\n"
    "This OTP is valid for {minutes} minutes.\n\n"
    "If you didn't request this OTP, please ignore this email."
)


class EmailService:
    """SMTP delivery through Gmail, Outlook or a custom relay; logs only when none is configured."""

    def __init__(self):
        self.host: Optional[str] = None
        self.port = 587
        self.use_ssl = False
        self.user: Optional[str] = None
        self.password: Optional[str] = None
        self._configure()

    def _configure(self):
        if config.EMAIL_USER and config.EMAIL_PASSWORD:
            self.host, self.user, self.password = "smtp.gmail.com", config.EMAIL_USER, config.EMAIL_PASSWORD
            logger.info("Email service configured with Gmail")
        elif config.OUTLOOK_USER and config.OUTLOOK_PASSWORD:
            self.host, self.user, self.password = "smtp.office365.com", config.OUTLOOK_USER, config.OUTLOOK_PASSWORD
            logger.info("Email service configured with Outlook")
        elif config.SMTP_HOST and config.SMTP_USER and config.SMTP_PASS:
            self.host, self.user, self.password = config.SMTP_HOST, config.SMTP_USER, config.SMTP_PASS
            self.port = config.SMTP_PORT
            self.use_ssl = config.SMTP_SECURE
            logger.info("Email service configured with custom SMTP")
        else:
            logger.warning("No email credentials found, using mock email service")

    @property
    def is_mock(self) -> bool:
        return self.host is None

    def send_email(self, to: str, subject: str, html_content: str, text_content: str) -> dict:
        if self.is_mock:
            logger.info("[MOCK] Email to %s, subject %r: %s", to, subject, text_content)
            return {"messageId": f"mock-{int(time.time() * 1000)}", "response": "Mock email sent successfully"}

        msg = EmailMessage()
        msg["From"] = self.user or config.EMAIL_FROM
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text_content)
        msg.add_alternative(html_content, subtype="html")

        try:
            if self.use_ssl:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=30)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=30)
            with server:
                if not self.use_ssl:
                    server.starttls()
                server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Error sending email to %s: %s", to, e)
            raise EmailDeliveryError("Failed to send email. Please try again.") from e

        logger.info("Email sent to %s", to)
        return {"messageId": msg.get("Message-ID"), "response": "sent"}

    def send_otp_email(self, to: str, otp: str, purpose: str = "verification", minutes: int = 10) -> dict:
        fields = {"otp": otp, "purpose": purpose, "minutes": minutes}
        return self.send_email(
            to,
            "Your OTP Code - LMS Platform",
            OTP_HTML.format(**fields),
            OTP_TEXT.format(**fields),
        )
