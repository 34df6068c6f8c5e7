"""
Settings for the desktop agent.

Values come from the process environment (after ``load_dotenv()``) and
can be overridden per request for model, working directory, config file
and auto-approval.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

AUTH_MODE_API_KEY = "api_key"
AUTH_MODE_OAUTH = "oauth"

PROVIDER_KIMI = "kimi"
PROVIDER_OPENAI = "openai"

DEFAULT_API_KEY_BASE = "https://api.moonshot.cn/v1"
DEFAULT_OAUTH_BASE = "https://api.kimi.com/coding/v1"
DEFAULT_MODEL = "kimi-k2.5"
DEFAULT_SHARE_DIR = Path.home() / ".kimi"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _non_empty(value: Optional[str]) -> Optional[str]:
    return value if value else None


@dataclass
class Settings:
    """Resolved agent settings.

    Attributes:
        auth_mode: ``api_key`` or ``oauth``
        provider: ``kimi`` (httpx client) or ``openai`` (OpenAI SDK client)
        api_key: API key (api_key mode)
        api_base: Explicit endpoint base URL (api_key mode)
        model: Default model identifier
        work_dir: Default working directory
        config_file: Config file passed to network tools
        yolo: Auto-approve gated tools
        max_steps: Model rounds per turn
        share_dir: Data directory for sessions and credentials
        request_timeout: Model request timeout in seconds
        search_url: Web search service endpoint
    """

    auth_mode: str = AUTH_MODE_OAUTH
    provider: str = PROVIDER_KIMI
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    model: str = DEFAULT_MODEL
    work_dir: str = field(default_factory=os.getcwd)
    config_file: str = str(DEFAULT_SHARE_DIR / "config.toml")
    yolo: bool = False
    max_steps: int = 20
    share_dir: Path = DEFAULT_SHARE_DIR
    request_timeout: float = 120.0
    search_url: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv: bool = True) -> Settings:
        """Build settings from environment variables.

        Args:
            dotenv: Load a ``.env`` file first
        """
        if dotenv:
            load_dotenv()

        share_dir = Path(os.getenv("AGENTDESK_SHARE_DIR") or DEFAULT_SHARE_DIR).expanduser()
        return cls(
            auth_mode=os.getenv("AGENTDESK_AUTH_MODE") or AUTH_MODE_OAUTH,
            provider=os.getenv("AGENTDESK_PROVIDER") or PROVIDER_KIMI,
            api_key=_non_empty(os.getenv("AGENTDESK_API_KEY")),
            api_base=_non_empty(os.getenv("AGENTDESK_API_BASE")),
            model=os.getenv("AGENTDESK_MODEL") or DEFAULT_MODEL,
            work_dir=os.getenv("AGENTDESK_WORK_DIR") or os.getcwd(),
            config_file=os.getenv("AGENTDESK_CONFIG_FILE") or str(share_dir / "config.toml"),
            yolo=_env_bool("AGENTDESK_YOLO"),
            max_steps=_env_int("AGENTDESK_MAX_STEPS", 20),
            share_dir=share_dir,
            request_timeout=_env_float("AGENTDESK_REQUEST_TIMEOUT", 120.0),
            search_url=_non_empty(os.getenv("AGENTDESK_SEARCH_URL")),
        )

    @property
    def resolved_api_base(self) -> str:
        """Endpoint base URL for the configured auth mode."""
        if self.auth_mode == AUTH_MODE_API_KEY:
            return self.api_base or DEFAULT_API_KEY_BASE
        return (
            os.getenv("KIMI_CODE_BASE_URL")
            or os.getenv("KIMI_BASE_URL")
            or DEFAULT_OAUTH_BASE
        )

    @property
    def credentials_file(self) -> Path:
        """OAuth token file used in oauth mode."""
        return self.share_dir / "credentials" / "kimi-code.json"

    def with_overrides(
        self,
        model: Optional[str] = None,
        work_dir: Optional[str] = None,
        config_file: Optional[str] = None,
        yolo: Optional[bool] = None,
    ) -> Settings:
        """Copy with per-request overrides; empty strings are ignored."""
        return replace(
            self,
            model=model or self.model,
            work_dir=work_dir or self.work_dir,
            config_file=config_file or self.config_file,
            yolo=self.yolo if yolo is None else yolo,
        )
