"""
Device management client (Jamf Classic API).

Lost Mode is enabled on devices while they travel and disabled once they
have been received. Lookups try mobile devices first, then computers.
"""

import logging
from typing import Optional

import httpx

from backend.app.core.config import Settings

logger = logging.getLogger(__name__)

LOST_MODE_COMMAND_XML = (
    "<mobile_device_command><general><command>{command}</command></general>"
    "<mobile_devices><mobile_device><id>{device_id}</id></mobile_device></mobile_devices>"
    "</mobile_device_command>"
)


class DeviceManagementError(Exception):
    """The device management API rejected or failed a request."""


class DeviceManager:
    """
    Thin async wrapper over the Jamf Classic API.

    Construct once per process; aclose() releases the connection pool.
    Passing `transport` lets tests substitute an httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: Optional[str],
        username: Optional[str],
        password: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.configured = bool(base_url and username and password)
        self._client: Optional[httpx.AsyncClient] = None
        if self.configured:
            self._client = httpx.AsyncClient(
                base_url=f"{base_url.rstrip('/')}/JSSResource",
                auth=(username, password),
                headers={"Accept": "application/json"},
                timeout=timeout,
                transport=transport,
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeviceManager":
        return cls(
            settings.jamf_url,
            settings.jamf_user,
            settings.jamf_password,
            timeout=settings.jamf_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def find_device_id(self, serial_number: str) -> Optional[int]:
        """Resolve a serial to a Jamf device id, or None if Jamf has no such device."""
        for path, root in (
            (f"/mobiledevices/serialnumber/{serial_number}", "mobile_device"),
            (f"/computers/serialnumber/{serial_number}", "computer"),
        ):
            try:
                response = await self._client.get(path)
            except httpx.HTTPError as exc:
                raise DeviceManagementError(f"Jamf lookup failed for {serial_number}: {exc}") from exc

            if response.status_code == 404:
                continue
            if response.is_error:
                raise DeviceManagementError(
                    f"Jamf lookup failed for {serial_number}: {response.status_code} {response.text}"
                )

            device_id = (response.json().get(root) or {}).get("general", {}).get("id")
            if device_id:
                return device_id

        return None

    async def _send_lost_mode_command(self, serial_number: str, command: str) -> bool:
        if not self.configured:
            logger.warning("Jamf is not configured; skipping %s for %s", command, serial_number)
            return False

        device_id = await self.find_device_id(serial_number)
        if device_id is None:
            logger.warning("Jamf device not found for serial %s; skipping %s", serial_number, command)
            return False

        body = LOST_MODE_COMMAND_XML.format(command=command, device_id=device_id)
        try:
            response = await self._client.post(
                f"/mobiledevicecommands/command/{command}",
                content=body,
                headers={"Content-Type": "application/xml"},
            )
        except httpx.HTTPError as exc:
            raise DeviceManagementError(f"{command} failed for {serial_number}: {exc}") from exc

        if response.is_error:
            raise DeviceManagementError(
                f"{command} failed for {serial_number}: {response.status_code} {response.text}"
            )

        logger.info("Sent %s for device %s (serial %s)", command, device_id, serial_number)
        return True

    async def lock_device(self, serial_number: str) -> bool:
        return await self._send_lost_mode_command(serial_number, "EnableLostMode")

    async def unlock_device(self, serial_number: str) -> bool:
        return await self._send_lost_mode_command(serial_number, "DisableLostMode")
