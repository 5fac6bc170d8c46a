"""
Per-client key/value storage.

Holds the small values the host persists on behalf of the embedded wallet:
the auth cookie, the device share and the wallet user id.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from .config import EmbedLinkConfig

logger = logging.getLogger(__name__)

AUTH_COOKIE_KEY = "authCookie"
DEVICE_SHARE_KEY = "deviceShare"
WALLET_USER_ID_KEY = "walletUserId"


class ClientStorage:
    """
    JSON file backed store scoped to one client id.

    Usage:
        storage = ClientStorage("client-123")
        await storage.save_auth_cookie(cookie)
        cookie = await storage.get_auth_cookie()
    """

    def __init__(self, client_id: str, config: Optional[EmbedLinkConfig] = None):
        self.client_id = client_id
        self.config = config or EmbedLinkConfig()

    @property
    def path(self) -> Path:
        return self.config.storage_path(self.client_id)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)

    async def get_item(self, key: str) -> Optional[str]:
        """Get one value, None when absent."""
        return self._read().get(key)

    async def set_item(self, key: str, value: str) -> None:
        """Store one value."""
        data = self._read()
        data[key] = value
        self._write(data)
        logger.debug(f"Stored {key} for {self.client_id}")

    async def remove_item(self, key: str) -> bool:
        """
        Remove one value.

        Returns:
            True if the key existed
        """
        data = self._read()
        if key not in data:
            return False
        del data[key]
        self._write(data)
        return True

    async def get_auth_cookie(self) -> Optional[str]:
        return await self.get_item(AUTH_COOKIE_KEY)

    async def save_auth_cookie(self, cookie: str) -> None:
        await self.set_item(AUTH_COOKIE_KEY, cookie)

    async def remove_auth_cookie(self) -> bool:
        return await self.remove_item(AUTH_COOKIE_KEY)

    async def get_device_share(self) -> Optional[str]:
        return await self.get_item(DEVICE_SHARE_KEY)

    async def save_device_share(self, share: str) -> None:
        await self.set_item(DEVICE_SHARE_KEY, share)

    async def remove_device_share(self) -> bool:
        return await self.remove_item(DEVICE_SHARE_KEY)

    async def get_wallet_user_id(self) -> Optional[str]:
        return await self.get_item(WALLET_USER_ID_KEY)

    async def save_wallet_user_id(self, user_id: str) -> None:
        await self.set_item(WALLET_USER_ID_KEY, user_id)

    async def remove_wallet_user_id(self) -> bool:
        return await self.remove_item(WALLET_USER_ID_KEY)
