"""HTML account e-mails sent through Django's mail framework."""

import logging
import smtplib

from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from core import messages as msg
from core.conf import AauthConfig
from core.messages import MessageBag

logger = logging.getLogger(__name__)


class AccountMailer:
    """Render and send verification and password reset messages."""

    def __init__(self, config: AauthConfig, messages: MessageBag):
        self.config = config
        self.messages = messages

    @property
    def from_email(self) -> str:
        return f"{self.config.email_from_name} <{self.config.email_from}>"

    def build_link(self, path: str, *parts) -> str:
        suffix = "/".join(str(part) for part in parts)
        return f"{self.config.site_url.rstrip('/')}/{path.strip('/')}/{suffix}"

    def send_verification(self, user_id: int, email: str, code: str) -> bool:
        context = {"code": code, "link": self.build_link(self.config.link_verification, user_id, code)}
        return self._send(email, msg.SUBJECT_VERIFICATION, "aauth/verification.html", context)

    def send_remind_password(self, email: str, code: str) -> bool:
        context = {"code": code, "link": self.build_link(self.config.link_reset_password, code)}
        return self._send(email, msg.SUBJECT_RESET, "aauth/remind_password.html", context)

    def send_reset_password(self, email: str, password: str) -> bool:
        context = {"password": password}
        return self._send(email, msg.SUBJECT_RESET_SUCCESS, "aauth/reset_password.html", context)

    def _send(self, to: str, subject, template: str, context: dict) -> bool:
        html = render_to_string(template, context)
        message = EmailMultiAlternatives(
            subject=str(subject),
            body=strip_tags(html),
            from_email=self.from_email,
            to=[to],
        )
        message.attach_alternative(html, "text/html")
        try:
            message.send()
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Sending %s to %s failed: %s", template, to, exc)
            self.messages.error(str(exc) or exc.__class__.__name__)
            return False
        return True


__all__ = ["AccountMailer"]
