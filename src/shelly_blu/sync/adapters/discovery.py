"""Bulk discovery adapter for the Shelly Cloud.

Implements IDiscoveryClient with one ``/device/all_status`` call. Discovery
favours availability over strictness: a failed call, a malformed response or
an explicit ``isok: false`` all yield an empty snapshot, never an exception.
"""

import logging

from ..domain.entities import DeviceDescriptor
from ..domain.ports import ICloudSession, IDiscoveryClient
from ..domain.schemas import parse_all_status, parse_device_info

logger = logging.getLogger(__name__)

# Generation marker of Bluetooth (BLU) devices relayed through a gateway
BLU_FAMILY = "GBLE"


class ShellyDiscoveryClient(IDiscoveryClient):
    """Discovers devices of one generation/family through the cloud."""

    ENDPOINT = "/device/all_status"

    def __init__(self, cloud: ICloudSession, family: str = BLU_FAMILY):
        self.cloud = cloud
        self.family = family

    async def fetch_all(self) -> list[DeviceDescriptor]:
        try:
            payload = await self.cloud.call(self.ENDPOINT)
        except Exception as e:
            logger.warning(f"Device discovery failed: {type(e).__name__}: {e}")
            return []

        response = parse_all_status(payload)
        if response is None:
            logger.warning("Device discovery returned an unexpected response shape")
            return []
        if response.isok is not True:
            logger.warning("Device discovery returned isok=false")
            return []

        devices: list[DeviceDescriptor] = []
        for device_id, entry in response.devices_status.items():
            info = parse_device_info(entry)
            if info is None:
                logger.debug(f"Skipping device {device_id}: missing or malformed _dev_info")
                continue
            if info.gen != self.family:
                continue
            devices.append(
                DeviceDescriptor.create(
                    unique_id=info.id,
                    code=info.code,
                    payload=entry,
                )
            )

        logger.info(
            f"Discovered {len(devices)} {self.family} device(s) "
            f"out of {len(response.devices_status)}"
        )
        return devices
