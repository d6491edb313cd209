"""Optional login features plugged into ``Aauth`` by configuration."""

from abc import ABC
from typing import TYPE_CHECKING

from django.core.exceptions import ImproperlyConfigured

if TYPE_CHECKING:  # pragma: no cover
    from core.aauth import Aauth


class AauthModule(ABC):
    """Base class for an optional feature bound to one ``Aauth`` instance."""

    name: str = ""

    def __init__(self, aauth: "Aauth"):
        self.aauth = aauth
        self.config = aauth.config
        self.context = aauth.context
        self.messages = aauth.messages


def module_registry() -> dict[str, type[AauthModule]]:
    from .captcha import CaptchaModule
    from .totp import TOTPModule

    return {CaptchaModule.name: CaptchaModule, TOTPModule.name: TOTPModule}


def build_modules(aauth: "Aauth") -> dict[str, AauthModule]:
    """Instantiate every module enabled in ``aauth.config``."""
    available = module_registry()
    modules: dict[str, AauthModule] = {}
    for name in aauth.config.enabled_modules:
        if name not in available:
            raise ImproperlyConfigured(f"Unknown AAUTH module {name!r}")
        modules[name] = available[name](aauth)
    return modules


__all__ = ["AauthModule", "build_modules", "module_registry"]
