"""Delivery of password reset links.

Real e-mail delivery is not wired up; the reset link is written to the
log so a developer can follow it locally.
"""

from datetime import datetime
from urllib.parse import urlencode

import structlog

from src.config import get_settings

logger = structlog.get_logger(__name__)


class EmailService:
    """Hands reset tokens to the user."""

    def build_reset_url(self, reset_token: str) -> str:
        """Return the front-end link that redeems a reset token."""
        base_url = get_settings().password_reset_url
        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{urlencode({'token': reset_token})}"

    async def send_password_reset(
        self,
        to_email: str,
        first_name: str,
        reset_token: str,
        expires_at: datetime,
    ) -> bool:
        """Deliver a reset link.

        Returns True when the link was handed off.
        """
        reset_url = self.build_reset_url(reset_token)

        logger.info(
            "password_reset_email_stubbed",
            to=to_email,
            expires_at=expires_at.isoformat(),
        )
        logger.debug(
            "password_reset_link",
            to=to_email,
            first_name=first_name,
            reset_url=reset_url,
        )
        return True
