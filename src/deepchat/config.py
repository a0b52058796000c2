"""Configuration loader for deepchat (global + project with TOML-based defaults)."""

from __future__ import annotations

import os
import platform
import stat
from pathlib import Path
from typing import Any, Dict, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for Python <3.11
    import tomli as tomllib  # type: ignore


class ConfigLoader:
    """
    Handles configuration loading from multiple sources with priority resolution.

    Priority (highest → lowest):
    1. Command-line arguments (not handled here)
    2. Environment variables (DEEPCHAT_*)
    3. Project config (.deepchat/config.toml)
    4. Global config (~/.config/deepchat/config.toml)
    5. Built-in defaults
    """

    def __init__(self) -> None:
        self.global_dir = self.get_global_config_dir()
        self.project_dir = self.get_project_config_dir()

        self.config: Dict[str, Any] = {}
        self.credentials: Dict[str, Any] = {}
        self.instructions: Dict[str, Any] = {}

        self._load_all()

    # ------------------------------------------------------------------ #
    # Public getters
    # ------------------------------------------------------------------ #
    def get(self, key: str, default: Any = None) -> Any:
        """Get config value by dot-separated key."""
        keys = key.split(".")
        value: Any = self.config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get a numeric value; env overrides arrive as strings."""
        value = self.get(key)
        if value is None or value == "":
            return default
        return float(value)

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get(key)
        if value is None or value == "":
            return default
        return int(value)

    def get_credential(self, provider: str, key: str) -> Optional[str]:
        """Get credential for a provider."""
        return self.credentials.get(provider, {}).get(key)

    @property
    def log_dir(self) -> Path:
        return Path(str(self.get("general.log_dir", self.global_dir / "logs"))).expanduser()

    # ------------------------------------------------------------------ #
    # Load/merge helpers
    # ------------------------------------------------------------------ #
    def _load_all(self) -> None:
        """Load all configuration files with proper priority."""
        self._load_global_config()
        self._load_credentials()
        self._load_instructions()

        if self.project_dir:
            self._load_project_config()
            self._load_project_instructions()

        self._apply_env_overrides()

    def _load_global_config(self) -> None:
        """Load global configuration."""
        config_file = self.global_dir / "config.toml"
        self.config = self._get_default_config()
        if config_file.exists():
            with open(config_file, "rb") as f:
                self._deep_merge(self.config, tomllib.load(f))
        else:
            self._create_default_config()

    def _load_credentials(self) -> None:
        """Load credentials with security checks."""
        creds_file = self.global_dir / "credentials.toml"

        if not creds_file.exists():
            self._create_default_credentials()
            return

        if platform.system() != "Windows":
            st = creds_file.stat()
            # world/group readable bits disallowed
            if st.st_mode & (stat.S_IRWXG | stat.S_IRWXO):
                raise PermissionError(
                    f"Insecure permissions on {creds_file}. Run: chmod 600 {creds_file}"
                )

        with open(creds_file, "rb") as f:
            self.credentials = tomllib.load(f)

    def _load_instructions(self) -> None:
        """Load global stage instruction overrides."""
        instructions_file = self.global_dir / "instructions.toml"
        if instructions_file.exists():
            with open(instructions_file, "rb") as f:
                self.instructions = tomllib.load(f).get("instructions", {})

    def _load_project_config(self) -> None:
        """Load project-specific config and merge with global."""
        config_file = self.project_dir / "config.toml"
        if config_file.exists():
            with open(config_file, "rb") as f:
                project_config = tomllib.load(f)
                self._deep_merge(self.config, project_config)

    def _load_project_instructions(self) -> None:
        """Load project-specific instruction overrides."""
        instructions_file = self.project_dir / "instructions.toml"
        if instructions_file.exists():
            with open(instructions_file, "rb") as f:
                project_instructions = tomllib.load(f).get("instructions", {})
                self._deep_merge(self.instructions, project_instructions)

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides (DEEPCHAT_*)."""
        env_prefix = "DEEPCHAT_"
        for key, value in os.environ.items():
            if not key.startswith(env_prefix):
                continue
            # DEEPCHAT_PIPELINE__INVOCATION_TIMEOUT_SECONDS -> pipeline.invocation_timeout_seconds
            config_key = key[len(env_prefix) :].lower().replace("__", ".")
            self._set_nested(self.config, config_key, value)

    # ------------------------------------------------------------------ #
    # Static paths/helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def get_global_config_dir() -> Path:
        """Get platform-specific global config directory following XDG spec."""
        system = platform.system()
        if system == "Windows":
            base = Path(os.environ.get("APPDATA", "~\\AppData\\Roaming")).expanduser()
        elif system == "Darwin":
            xdg = os.environ.get("XDG_CONFIG_HOME")
            base = Path(xdg) if xdg else Path.home() / ".config"
        else:
            base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()
        return base / "deepchat"

    @staticmethod
    def get_project_config_dir() -> Path | None:
        """Find .deepchat directory in current or parent directories."""
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_dir = parent / ".deepchat"
            if config_dir.is_dir():
                return config_dir
        return None

    # ------------------------------------------------------------------ #
    # Persistence helpers
    # ------------------------------------------------------------------ #
    def _create_default_config(self) -> None:
        self.global_dir.mkdir(parents=True, exist_ok=True)
        config_file = self.global_dir / "config.toml"
        with open(config_file, "w", encoding="utf-8") as f:
            f.write(self._get_default_config_toml())

    def _create_default_credentials(self) -> None:
        self.global_dir.mkdir(parents=True, exist_ok=True)
        creds_file = self.global_dir / "credentials.toml"
        with open(creds_file, "w", encoding="utf-8") as f:
            f.write("# Add your API credentials here\n# [gemini]\n# api_key = \"...\"\n")
        if platform.system() != "Windows":
            os.chmod(creds_file, 0o600)

    # ------------------------------------------------------------------ #
    # Default content
    # ------------------------------------------------------------------ #
    def _get_default_config(self) -> Dict[str, Any]:
        """Built-in defaults."""
        return {
            "general": {
                "log_dir": str(self.global_dir / "logs"),
            },
            "model": {
                "provider": "gemini",
                "name": "gemini-2.5-pro",
                "request_timeout_seconds": 300.0,
            },
            "pipeline": {
                "invocation_timeout_seconds": 300.0,
            },
        }

    def _get_default_config_toml(self) -> str:
        """Default config TOML text for first-run creation."""
        default = self._get_default_config()
        return "\n".join(
            [
                "[general]",
                f"log_dir = '{default['general']['log_dir']}'",
                "",
                "[model]",
                f'provider = "{default["model"]["provider"]}"',
                f'name = "{default["model"]["name"]}"',
                f'request_timeout_seconds = {default["model"]["request_timeout_seconds"]}',
                "# temperature = 0.7",
                "# max_tokens = 8192",
                "",
                "[pipeline]",
                f'invocation_timeout_seconds = {default["pipeline"]["invocation_timeout_seconds"]}',
                "",
            ]
        )

    # ------------------------------------------------------------------ #
    # Utility helpers
    # ------------------------------------------------------------------ #
    def _deep_merge(self, base: dict, override: dict) -> None:
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _set_nested(self, d: dict, path: str, value: Any) -> None:
        keys = path.split(".")
        for key in keys[:-1]:
            d = d.setdefault(key, {})
        d[keys[-1]] = value


Config = ConfigLoader

__all__ = ["ConfigLoader", "Config"]
