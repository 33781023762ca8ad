"""Cloud session adapter.

Implements ICloudSession by wrapping the existing ShellyCloudClient, so the
sync layer depends on the port rather than on the HTTP client.
"""

from typing import TYPE_CHECKING, Any

from ..domain.ports import ICloudSession

if TYPE_CHECKING:
    from ...api.client import ShellyCloudClient


class ShellyCloudSession(ICloudSession):
    """Shelly Cloud implementation of the cloud session port."""

    def __init__(self, client: "ShellyCloudClient"):
        self.client = client

    async def call(self, path: str) -> dict[str, Any]:
        return await self.client.call(path)

    async def get_ws_endpoint(self) -> str:
        return await self.client.get_ws_endpoint()
