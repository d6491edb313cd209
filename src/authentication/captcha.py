"""CAPTCHA challenge for clients with many failed logins."""

import logging
from typing import Any

import httpx
from django.utils.html import format_html

from .attempts import LoginAttemptTracker
from .modules import AauthModule

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, dict[str, str]] = {
    "recaptcha": {
        "verify_url": "https://www.google.com/recaptcha/api/siteverify",
        "field": "g-recaptcha-response",
        "script": "https://www.google.com/recaptcha/api.js",
        "widget_class": "g-recaptcha",
    },
    "hcaptcha": {
        "verify_url": "https://hcaptcha.com/siteverify",
        "field": "h-captcha-response",
        "script": "https://js.hcaptcha.com/1/api.js",
        "widget_class": "h-captcha",
    },
}

VERIFY_TIMEOUT = 10


class CaptchaModule(AauthModule):
    """reCAPTCHA / hCaptcha verification keyed on the login attempt counter."""

    name = "captcha"

    @property
    def provider(self) -> dict[str, str]:
        return PROVIDERS[self.config.captcha_type]

    @property
    def response_field(self) -> str:
        """Form field the widget posts its token in."""
        return self.provider["field"]

    def is_captcha_required(self) -> bool:
        if not self.config.captcha_enabled:
            return False
        attempts = LoginAttemptTracker(self.config, self.context).find_login()
        return attempts >= self.config.captcha_login_attempts

    def verify_captcha_response(self, response: str) -> dict[str, Any]:
        """Ask the provider whether ``response`` solves the challenge."""
        if not response:
            return {"success": False, "error-codes": ["missing-input-response"]}

        data = {
            "secret": self.config.captcha_secret,
            "response": response,
            "remoteip": self.context.ip_address,
        }
        try:
            with httpx.Client(timeout=VERIFY_TIMEOUT) as client:
                result = client.post(self.provider["verify_url"], data=data)
                result.raise_for_status()
                payload = result.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("CAPTCHA verification call failed: %s", exc)
            return {"success": False, "error-codes": ["request-failed"]}

        return {"success": bool(payload.get("success")), "error-codes": payload.get("error-codes", [])}

    def generate_captcha_html(self) -> str:
        """Widget markup, or an empty string when no challenge is needed."""
        if not self.is_captcha_required():
            return ""
        return format_html(
            '<script src="{}" async defer></script><div class="{}" data-sitekey="{}"></div>',
            self.provider["script"],
            self.provider["widget_class"],
            self.config.captcha_site_key,
        )


__all__ = ["CaptchaModule", "PROVIDERS"]
