# Outgoing mail: SMTP when the server is configured, otherwise written to the log
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol
from config import Settings, get_settings

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10

class Mailer(Protocol):
    def send(self, to_email: str, subject: str, html_content: str) -> dict:
        ...

class SmtpMailer:
    """Send mail through an SMTP server (implicit TLS on port 465, STARTTLS otherwise)."""

    def __init__(self, host: str, port: int, username: str, password: str, from_email: str):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email

    def send(self, to_email: str, subject: str, html_content: str) -> dict:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.from_email
        msg['To'] = to_email
        msg.attach(MIMEText(html_content, 'html'))

        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)
        with server:
            if self.port != 465:
                server.starttls()
            server.login(self.username, self.password)
            server.send_message(msg)
        logger.info("Mail sent to %s: %s", to_email, subject)
        return {"success": True}

class ConsoleMailer:
    """Stand-in used when no mail server is configured."""

    def send(self, to_email: str, subject: str, html_content: str) -> dict:
        logger.info(
            "Mail not configured, message not sent\nTo: %s\nSubject: %s\n%s",
            to_email, subject, html_content,
        )
        return {"success": False, "message": "Mail not configured"}

_mailer: Optional[Mailer] = None

def init_mailer(settings: Optional[Settings] = None) -> Mailer:
    global _mailer
    if _mailer is not None:
        return _mailer

    settings = settings or get_settings()
    if settings.mail_configured:
        _mailer = SmtpMailer(
            host=settings.email_host,
            port=settings.email_port,
            username=settings.email_user,
            password=settings.email_password,
            from_email=settings.email_from,
        )
        logger.info("Using SMTP mailer at %s:%s", settings.email_host, settings.email_port)
    else:
        _mailer = ConsoleMailer()
        logger.warning("Mail is not configured; emails will be written to the log")
    return _mailer

def get_mailer() -> Mailer:
    return _mailer if _mailer is not None else init_mailer()

def reset_mailer() -> None:
    global _mailer
    _mailer = None

def render_reset_password_email(reset_url: str, expire_minutes: int) -> str:
    return f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
        <h1 style="font-size: 24px;">Online Memorial</h1>
        <p>We received a request to reset your password. If you did not make this
        request you can ignore this email and your account will stay secure.</p>
        <p style="text-align: center; margin: 30px 0;">
          <a href="{reset_url}" style="padding: 12px 32px; background: #667eea; color: white;
             text-decoration: none; border-radius: 8px;">Reset password</a>
        </p>
        <p style="color: #6b7280; font-size: 14px;">Or copy this link into your browser:<br>
          <a href="{reset_url}">{reset_url}</a></p>
        <p style="color: #6b7280; font-size: 14px;">This link expires in {expire_minutes} minutes.</p>
      </div>
    """

def send_reset_password_email(to_email: str, reset_url: str) -> dict:
    html = render_reset_password_email(reset_url, get_settings().reset_token_expire_minutes)
    return get_mailer().send(to_email, "Reset your password", html)
