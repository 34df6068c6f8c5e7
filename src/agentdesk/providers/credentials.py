"""Credential providers for the model endpoint."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Optional

from ..domain.ports import ICredentialProvider

logger = logging.getLogger(__name__)

# Tokens this close to expiry are treated as expired
EXPIRY_MARGIN_SECONDS = 60


class StaticCredentialProvider(ICredentialProvider):
    """Fixed API key (api_key mode). An empty key means not logged in."""

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    async def get_valid_token(self) -> Optional[str]:
        return self.api_key or None


class TokenFileCredentialProvider(ICredentialProvider):
    """Reads an OAuth access token from a JSON credentials file.

    The file holds ``access_token`` and ``expires_at`` (epoch seconds).
    A missing, unreadable or expired token yields None; refreshing it is
    left to the login flow that wrote the file.
    """

    def __init__(self, path: Path, margin_seconds: int = EXPIRY_MARGIN_SECONDS):
        self.path = Path(path)
        self.margin_seconds = margin_seconds

    async def get_valid_token(self) -> Optional[str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cannot read credentials from {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            return None
        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            return None

        expires_at = data.get("expires_at")
        if isinstance(expires_at, (int, float)) and expires_at - self.margin_seconds <= time.time():
            logger.info("Access token expired")
            return None
        return token
