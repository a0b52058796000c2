"""Credential loading for provider adapters using ConfigLoader TOML credentials."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ConfigLoader
from .base import Provider

# Checked in order; API_KEY is what the browser build of the app read.
API_KEY_ENV_VARS = {
    Provider.GEMINI: ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"),
}


class CredentialsManager:
    """Loads provider credentials from env or ~/.config/deepchat/credentials.toml."""

    def __init__(self, config: Optional[ConfigLoader] = None) -> None:
        self.config = config or ConfigLoader()

    def get_api_key(self, provider: Provider) -> Optional[str]:
        """Return API key for provider, preferring env var overrides."""
        for env_var in API_KEY_ENV_VARS.get(provider, ()):
            value = os.getenv(env_var)
            if value:
                return value
        return self.config.get_credential(provider.value, "api_key")

    def get_base_url(self, provider: Provider, default: Optional[str] = None) -> Optional[str]:
        """Return base URL for provider if configured."""
        return self.config.get_credential(provider.value, "base_url") or default
