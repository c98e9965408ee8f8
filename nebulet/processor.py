"""Background reconciliation of stored container records with Docker."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import aiosqlite

from .db import ContainerRepository, RecordNotFoundError
from .docker import DockerError, DockerService
from .models import ContainerRecord, ContainerStatus, CreateContainerRequest

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 10.0


class ProcessorService:
    """Periodically drives every stored container towards its desired state."""

    def __init__(
        self,
        processor_name: str,
        db: aiosqlite.Connection,
        docker: DockerService,
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        self.processor_name = processor_name
        self._containers = ContainerRepository(db)
        self._docker = docker
        self._interval = interval
        self._shutdown = asyncio.Event()
        logger.info("Processor service initialized: %s", processor_name)

    @classmethod
    async def create(cls, processor_name: str, db: aiosqlite.Connection) -> "ProcessorService":
        """Connect to the local Docker daemon and build a processor around it."""
        docker = await DockerService.connect()
        return cls(processor_name, db, docker)

    async def start(self) -> None:
        """Run the processing loop until :meth:`shutdown` is called."""
        logger.info("Starting processor service...")
        logger.info("Starting main processing loop")
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not self._shutdown.is_set():
            delay = next_tick - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._shutdown.wait(), delay)
                except asyncio.TimeoutError:
                    pass
                else:
                    break
            next_tick += self._interval
            try:
                await self.process_containers()
            except Exception as exc:
                logger.error("Error in main processing loop: %s", exc)
        logger.info("Shutdown signal received, stopping processor")

    async def process_containers(self) -> None:
        """Process every stored container once; one failure does not stop the rest."""
        for container in await self._containers.list_all():
            try:
                await self.process_single_container(container)
            except Exception as exc:
                logger.error("Error processing container %s: %s", container.id, exc)

    async def process_single_container(self, container: ContainerRecord) -> None:
        status = container.status
        if status == ContainerStatus.PENDING.value:
            await self._create_in_docker(container)
        elif status == ContainerStatus.CREATED.value:
            await self._start_in_docker(container)
        elif status == ContainerStatus.RUNNING.value:
            if container.docker_id is not None:
                actual = await self._docker.get_container_status(container.docker_id)
                if actual != "running":
                    await self.update_container_status(container.id, actual)
        elif status == ContainerStatus.REMOVING.value:
            await self._remove(container)
        elif status in (ContainerStatus.STOPPED.value, ContainerStatus.FAILED.value):
            if container.docker_id is not None:
                try:
                    await self._docker.remove_container(container.docker_id)
                except DockerError as exc:
                    logger.warning("Failed to remove container %s: %s", container.docker_id, exc)
        else:
            logger.warning("Unknown container status: %s", status)

    async def _create_in_docker(self, container: ContainerRecord) -> None:
        logger.info("Creating container in Docker: %s", container.name)
        request = CreateContainerRequest(name=container.name, image=container.image)
        try:
            docker_id = await self._docker.create_container(request)
        except DockerError as exc:
            logger.error("Failed to create container %s: %s", container.id, exc)
            await self.update_container_status(container.id, ContainerStatus.FAILED.value)
            return
        await self.update_container_status(container.id, ContainerStatus.CREATED.value, docker_id)
        logger.info("Container created successfully: %s", container.id)

    async def _start_in_docker(self, container: ContainerRecord) -> None:
        if container.docker_id is None:
            return
        logger.info("Starting container: %s", container.docker_id)
        try:
            await self._docker.start_container(container.docker_id)
        except DockerError as exc:
            logger.error("Failed to start container %s: %s", container.docker_id, exc)
            await self.update_container_status(container.id, ContainerStatus.FAILED.value)
            return
        await self.update_container_status(container.id, ContainerStatus.RUNNING.value)
        logger.info("Container started successfully: %s", container.id)

    async def _remove(self, container: ContainerRecord) -> None:
        if container.docker_id is not None:
            logger.info("Removing container: %s", container.docker_id)
            try:
                await self._docker.stop_container(container.docker_id)
            except DockerError as exc:
                logger.warning("Failed to stop container %s: %s", container.docker_id, exc)
            try:
                await self._docker.remove_container(container.docker_id)
            except DockerError as exc:
                logger.warning("Failed to remove container %s: %s", container.docker_id, exc)
        await self._containers.delete(container.id)
        logger.info("Container removed from database: %s", container.id)

    async def update_container_status(
        self, container_id: str, status: str, docker_id: str | None = None
    ) -> ContainerRecord:
        """Store a new status (and Docker id, if given) for a container."""
        record = await self._containers.get(container_id)
        if record is None:
            raise RecordNotFoundError("Container not found")
        record.status = str(status.value if isinstance(status, ContainerStatus) else status)
        record.updated_at = datetime.now(timezone.utc).isoformat()
        if docker_id is not None:
            record.docker_id = docker_id
        await self._containers.update(record)
        logger.info("Updated container %s status to %s", container_id, record.status)
        return record

    def shutdown(self) -> None:
        """Ask the processing loop to stop."""
        self._shutdown.set()