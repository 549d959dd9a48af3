"""
YoursAI - Secret Resolver
==========================
Name → secret lookup used by the request pipelines.  The default
implementation reads from the loaded ``Settings`` (environment / ``.env``);
deployments backed by a parameter store only need another object with
the same ``get_secret`` method.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import SecretStr

from yoursai.config.settings import Settings
from yoursai.src.core.errors import SecretResolutionError


@runtime_checkable
class SecretResolver(Protocol):
    """Anything that can return a secret string by name."""

    def get_secret(self, name: str) -> str: ...


class SettingsSecretResolver:
    """Resolve secrets from ``Settings`` fields by their field name."""

    __slots__ = ("_settings",)

    def __init__(self, config: Settings) -> None:
        self._settings = config


    def get_secret(self, name: str) -> str:
        value = getattr(self._settings, name, None)
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        if not isinstance(value, str) or not value.strip():
            raise SecretResolutionError(f"Secret '{name}' is not configured")
        return value
