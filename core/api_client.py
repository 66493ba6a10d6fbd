"""REST client for the Cider playback API.

Every request carries the ``apptoken`` header. ``requests`` exceptions are
translated into the ``CiderAPIError`` family here and never leak further.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from .data_models import RepeatMode, ShuffleMode

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/playback"


class CiderAPIError(Exception):
    """Base class for playback API failures."""
    pass


class AuthMissingError(CiderAPIError):
    """No credential configured; nothing was sent."""
    pass


class AuthRejectedError(CiderAPIError):
    """The service refused the configured credential."""
    pass


class TransportError(CiderAPIError):
    """The service could not be reached or did not answer in time."""
    pass


class CommandFailedError(CiderAPIError):
    """The service answered but the command did not succeed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
class CiderAPIClient:

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:10767",
        token: Optional[str] = None,
        *,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def configure(self, base_url: str, token: Optional[str], timeout: float) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise AuthMissingError("No Cider app token configured")
        return {"apptoken": self.token, "Content-Type": "application/json"}

    def request(self, method: str, resource: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send one request synchronously and return the decoded JSON body."""
        headers = self._headers()
        url = f"{self.base_url}{API_PREFIX}/{resource}"
        try:
            response = self.session.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise TransportError(f"{method} {resource} timed out") from exc
        except requests.RequestException as exc:
            raise TransportError(f"{method} {resource} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthRejectedError(f"{method} {resource} rejected: {response.status_code}")
        if response.status_code >= 400:
            raise CommandFailedError(
                f"{method} {resource} failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"value": body}
        if body.get("status") == "error" or "error" in body:
            raise CommandFailedError(f"{method} {resource} returned error: {body.get('error', body)}",
                                     status_code=response.status_code)
        logger.debug("%s %s -> %s", method, resource, response.status_code)
        return body

    async def call(self, method: str, resource: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await asyncio.to_thread(self.request, method, resource, payload)

    # ------------------------------------------------------------------
    async def check_active(self) -> None:
        """Authenticated probe; an error body here means the token is bad."""
        try:
            await self.call("GET", "active")
        except CommandFailedError as exc:
            raise AuthRejectedError(str(exc)) from exc

    async def now_playing(self) -> Dict[str, Any]:
        body = await self.call("GET", "now-playing")
        info = body.get("info")
        return info if isinstance(info, dict) else {}

    async def get_volume(self) -> float:
        body = await self.call("GET", "volume")
        try:
            return max(0.0, min(1.0, float(body["volume"])))
        except (KeyError, TypeError, ValueError) as exc:
            raise CommandFailedError(f"Unexpected volume response: {body}") from exc

    async def set_volume(self, volume: float) -> None:
        await self.call("POST", "volume", {"volume": max(0.0, min(1.0, volume))})

    async def play_pause(self) -> None:
        await self.call("POST", "playpause")

    async def next_track(self) -> None:
        await self.call("POST", "next")

    async def previous_track(self) -> None:
        await self.call("POST", "previous")

    async def seek(self, position: float) -> None:
        await self.call("POST", "seek", {"position": position})

    async def toggle_repeat(self) -> None:
        await self.call("POST", "toggle-repeat")

    async def toggle_shuffle(self) -> None:
        await self.call("POST", "toggle-shuffle")

    async def add_to_library(self) -> None:
        await self.call("POST", "add-to-library")

    async def set_rating(self, rating: int) -> None:
        await self.call("POST", "set-rating", {"rating": rating})

    async def repeat_mode(self) -> RepeatMode:
        body = await self.call("GET", "repeat-mode")
        try:
            return RepeatMode(int(body["value"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise CommandFailedError(f"Unexpected repeat-mode response: {body}") from exc

    async def shuffle_mode(self) -> ShuffleMode:
        body = await self.call("GET", "shuffle-mode")
        try:
            return ShuffleMode(int(body["value"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise CommandFailedError(f"Unexpected shuffle-mode response: {body}") from exc

    # ------------------------------------------------------------------
    def _download(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"Artwork download failed: {exc}") from exc
        if response.status_code != 200:
            raise CommandFailedError(f"Artwork download failed: {response.status_code}",
                                     status_code=response.status_code)
        return response.content

    async def download_artwork(self, url: str) -> bytes:
        return await asyncio.to_thread(self._download, url)

    def close(self) -> None:
        self.session.close()
