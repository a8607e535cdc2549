import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

import aiosmtplib

from core.breaker import CircuitBreaker, email_breaker
from core.credentials import SmtpCredentialProvider
from core.settings import settings

logger = logging.getLogger(__name__)


class EmailService:
    def __init__(
        self,
        credentials: SmtpCredentialProvider | None = None,
        breaker: CircuitBreaker = email_breaker,
    ):
        self.credentials = credentials or SmtpCredentialProvider()
        self.breaker = breaker

    async def _send(self, to: str, subject: str, html_content: str) -> bool:
        creds = self.credentials.get()
        if creds is None:
            logger.warning(f"SMTP not configured; skipping '{subject}' email to {to}")
            return False

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = creds.sender
        message["To"] = to
        message.attach(MIMEText(html_content, "html"))

        async def handler():
            await aiosmtplib.send(
                message,
                hostname=creds.host,
                port=creds.port,
                username=creds.username,
                password=creds.password,
                start_tls=creds.use_tls,
            )

        try:
            await self.breaker.call(handler)
        except Exception as e:
            logger.error(f"Error sending '{subject}' email to {to}: {e}")
            return False
        return True

    async def send_owner_authorization_email(
        self,
        owner_email: str,
        owner_name: str | None,
        tenant_name: str,
        property_address: str,
        raw_token: str,
    ) -> bool:
        authorize_link = f"{settings.FRONTEND_URL}/authorize/{raw_token}"
        ttl_days = settings.OWNER_AUTHORIZATION_TTL_DAYS

        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6;">
            <h2>Lease Transfer Authorization Request</h2>
            <p>Hello {escape(owner_name or "Property Owner")},</p>
            <p>{escape(tenant_name)} would like to list their lease at
               <strong>{escape(property_address)}</strong> for transfer on Novy.</p>
            <p>Please review the request and approve or decline it:</p>
            <a href="{authorize_link}" style="display:inline-block;background:#28a745;color:white;padding:10px 20px;
               text-decoration:none;border-radius:4px;">Review Request</a>
            <p>This link can only be used once and expires in {ttl_days} days.</p>
            <hr>
            <p>If you do not recognise this request, you can safely ignore this message.</p>
            <p>Best regards,<br>The Novy Team</p>
        </body>
        </html>
        """

        return await self._send(
            owner_email, "Action Required: Lease Transfer Authorization", html_content
        )
