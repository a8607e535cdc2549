from dataclasses import dataclass

from .exceptions import UpstreamError
from .settings import settings


@dataclass(frozen=True)
class StripeCredentials:
    secret_key: str
    webhook_secret: str | None


@dataclass(frozen=True)
class SmtpCredentials:
    host: str
    port: int
    username: str | None
    password: str | None
    use_tls: bool
    sender: str


class StripeCredentialProvider:
    """Credentials may rotate; callers fetch them on every use."""

    def get(self) -> StripeCredentials:
        if not settings.STRIPE_SECRET_KEY:
            raise UpstreamError("Payment provider is not configured")
        return StripeCredentials(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        )

    def webhook_secret(self) -> str | None:
        return settings.STRIPE_WEBHOOK_SECRET


class SmtpCredentialProvider:
    def get(self) -> SmtpCredentials | None:
        if not settings.EMAIL_SERVER:
            return None
        return SmtpCredentials(
            host=settings.EMAIL_SERVER,
            port=settings.EMAIL_PORT,
            username=settings.EMAIL_USER,
            password=settings.EMAIL_PASSWORD,
            use_tls=settings.EMAIL_USE_TLS,
            sender=settings.EMAIL_SENDER or settings.EMAIL_USER,
        )
