"""Asynchronous client for the parts of the Docker Engine API the service uses."""

from __future__ import annotations

import json
import logging
import os
from typing import Any
from urllib.parse import quote

import aiohttp

from .models import CreateContainerRequest

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/var/run/docker.sock"
STOP_TIMEOUT_SECONDS = 30
_LOCAL_BASE_URL = "http://localhost"


class DockerError(Exception):
    """Raised when the Docker daemon cannot be reached or rejects a request."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def _decode(body: bytes) -> Any:
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return body.decode("utf-8", "replace")


def _path_segment(value: str) -> str:
    return quote(value, safe="")


class DockerService:
    """Creates, starts, stops, removes and inspects containers."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str = _LOCAL_BASE_URL) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")

    @classmethod
    async def connect(cls, socket_path: str | None = None) -> "DockerService":
        """Connect to the local daemon and check that it answers.

        Without ``socket_path`` the ``DOCKER_HOST`` variable is honoured, falling
        back to the default UNIX socket.
        """
        base_url = _LOCAL_BASE_URL
        connector: aiohttp.BaseConnector | None = None
        if socket_path is None:
            host = os.environ.get("DOCKER_HOST", "")
            if host.startswith("unix://"):
                socket_path = host[len("unix://"):]
            elif host.startswith(("tcp://", "http://")):
                base_url = "http://" + host.split("://", 1)[1]
            else:
                socket_path = DEFAULT_SOCKET_PATH
        if socket_path is not None:
            connector = aiohttp.UnixConnector(path=socket_path)
        session = aiohttp.ClientSession(connector=connector)
        service = cls(session, base_url)
        try:
            version = await service.version()
        except BaseException:
            await session.close()
            raise
        logger.info(
            "Docker service initialized successfully (version %s)",
            version.get("Version") if isinstance(version, dict) else None,
        )
        return service

    async def close(self) -> None:
        await self._session.close()

    async def __aenter__(self) -> "DockerService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        payload: Any = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            async with self._session.request(method, url, params=params, json=payload) as resp:
                status = resp.status
                body = await resp.read()
        except aiohttp.ClientError as exc:
            raise DockerError(f"Docker request failed: {exc}") from exc
        decoded = _decode(body)
        if not 200 <= status < 300:
            message = decoded.get("message") if isinstance(decoded, dict) else None
            raise DockerError(message or f"Docker returned HTTP {status}", status=status)
        return decoded

    async def version(self) -> dict[str, Any]:
        """Return the daemon's version information."""
        return await self._request("GET", "/version")

    async def create_container(self, request: CreateContainerRequest) -> str:
        """Create a container and return its Docker id."""
        logger.info("Creating container: %s", request.name)
        try:
            result = await self._request(
                "POST",
                "/containers/create",
                params={"name": request.name},
                payload={"Image": request.image},
            )
        except DockerError as exc:
            logger.error("Failed to create container: %s", exc)
            raise
        container_id = result.get("Id") if isinstance(result, dict) else None
        if not isinstance(container_id, str):
            raise DockerError("Docker did not return a container id")
        logger.info("Container created successfully: %s", container_id)
        return container_id

    async def start_container(self, container_name: str) -> None:
        logger.info("Starting container: %s", container_name)
        try:
            await self._request("POST", f"/containers/{_path_segment(container_name)}/start")
        except DockerError as exc:
            logger.error("Failed to start container: %s", exc)
            raise
        logger.info("Container started successfully: %s", container_name)

    async def stop_container(self, container_name: str) -> None:
        """Stop a container, allowing it a grace period before it is killed."""
        logger.info("Stopping container: %s", container_name)
        try:
            await self._request(
                "POST",
                f"/containers/{_path_segment(container_name)}/stop",
                params={"t": str(STOP_TIMEOUT_SECONDS)},
            )
        except DockerError as exc:
            logger.error("Failed to stop container: %s", exc)
            raise
        logger.info("Container stopped successfully: %s", container_name)

    async def remove_container(self, container_name: str) -> None:
        logger.info("Removing container: %s", container_name)
        try:
            await self._request("DELETE", f"/containers/{_path_segment(container_name)}")
        except DockerError as exc:
            logger.error("Failed to remove container: %s", exc)
            raise
        logger.info("Container removed successfully: %s", container_name)

    async def get_container_status(self, container_id: str) -> str:
        """Return the daemon's state string for a container, such as ``running``."""
        try:
            info = await self._request("GET", f"/containers/{_path_segment(container_id)}/json")
        except DockerError as exc:
            logger.error("Failed to inspect container: %s", exc)
            raise
        state = info.get("State") if isinstance(info, dict) else None
        status = state.get("Status") if isinstance(state, dict) else None
        if not isinstance(status, str):
            raise DockerError(f"no state reported for container {container_id}")
        return status

    async def list_containers(self) -> list[str]:
        """Return the ids of all containers, stopped ones included."""
        logger.info("Listing all containers")
        try:
            entries = await self._request("GET", "/containers/json", params={"all": "true"})
        except DockerError as exc:
            logger.error("Failed to list containers: %s", exc)
            raise
        return [
            entry["Id"]
            for entry in entries or []
            if isinstance(entry, dict) and isinstance(entry.get("Id"), str)
        ]