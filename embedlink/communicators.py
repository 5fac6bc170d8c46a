"""
Wallet channels.

Two channels talk to the hosted wallet:
- EmbeddedWalletChannel: headless wallet manager, initialized from the
  values persisted in ClientStorage
- EmbeddedWalletUiChannel: visible wallet UI mounted into a container
"""

from typing import Any, Mapping, Optional

from .channel import Channel, ReadyHook
from .config import EmbedLinkConfig
from .link import QueryValue, create_link
from .storage import ClientStorage
from .transport.frame import Container


EMBEDDED_WALLET_FRAME_ID = "embedded-wallet-frame"
EMBEDDED_WALLET_UI_FRAME_ID = "embedded-wallet-modal-frame"

CustomizationOptions = Mapping[str, QueryValue]


def default_frame_styles() -> dict[str, Any]:
    """Styles of the modal wallet frame."""
    return {
        "height": "100%",
        "width": "100%",
        "border": "none",
        "backgroundColor": "transparent",
        "colorScheme": "light",
        "position": "fixed",
        "top": "0px",
        "right": "0px",
        "zIndex": "2147483646",
    }


class EmbeddedWalletChannel(Channel):
    """
    Headless channel to the wallet manager.

    On readiness it sends the persisted auth cookie, device share and
    wallet user id along with the client id.
    """

    def __init__(
        self,
        client_id: str,
        customization_options: Optional[CustomizationOptions] = None,
        config: Optional[EmbedLinkConfig] = None,
        storage: Optional[ClientStorage] = None,
        **kwargs: Any,
    ) -> None:
        config = config or EmbedLinkConfig()
        super().__init__(
            EMBEDDED_WALLET_FRAME_ID,
            create_link(
                client_id,
                config.embedded_wallet_path,
                customization_options,
                base_url=config.base_url,
            ),
            config=config,
            **kwargs,
        )
        self.client_id = client_id
        self.storage = storage or ClientStorage(client_id, config)

    async def init_variables(self) -> Mapping[str, Any]:
        return {
            "authCookie": await self.storage.get_auth_cookie(),
            "deviceShareStored": await self.storage.get_device_share(),
            "walletUserId": await self.storage.get_wallet_user_id(),
            "clientId": self.client_id,
        }


class EmbeddedWalletUiChannel(Channel):
    """Channel to a wallet UI surface mounted into the caller's container."""

    def __init__(
        self,
        client_id: str,
        path: str,
        container: Container,
        customization_options: Optional[CustomizationOptions] = None,
        frame_styles: Optional[dict[str, Any]] = None,
        on_ready: Optional[ReadyHook] = None,
        config: Optional[EmbedLinkConfig] = None,
        **kwargs: Any,
    ) -> None:
        config = config or EmbedLinkConfig()
        super().__init__(
            EMBEDDED_WALLET_UI_FRAME_ID,
            create_link(client_id, path, customization_options, base_url=config.base_url),
            mount_point=container,
            on_ready=on_ready,
            styles=frame_styles if frame_styles is not None else default_frame_styles(),
            config=config,
            **kwargs,
        )
        self.client_id = client_id
