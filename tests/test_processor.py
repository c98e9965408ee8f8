import asyncio
import contextlib

import aiosqlite
import pytest

from nebulet.db import ContainerRepository, RecordNotFoundError, run_migrations
from nebulet.docker import DockerError
from nebulet.models import ContainerRecord
from nebulet.processor import ProcessorService


class FakeDocker:
    def __init__(self):
        self.calls = []
        self.failing = set()
        self.statuses = {}

    def _maybe_fail(self, operation):
        if operation in self.failing:
            raise DockerError(f"{operation} failed")

    async def create_container(self, request):
        self.calls.append(("create", request.name, request.image))
        self._maybe_fail("create")
        return f"docker-{request.name}"

    async def start_container(self, name):
        self.calls.append(("start", name))
        self._maybe_fail("start")

    async def stop_container(self, name):
        self.calls.append(("stop", name))
        self._maybe_fail("stop")

    async def remove_container(self, name):
        self.calls.append(("remove", name))
        self._maybe_fail("remove")

    async def get_container_status(self, container_id):
        self.calls.append(("inspect", container_id))
        if container_id not in self.statuses:
            raise DockerError("No such container")
        return self.statuses[container_id]


@contextlib.asynccontextmanager
async def setup():
    db = await aiosqlite.connect(":memory:")
    try:
        await run_migrations(db)
        docker = FakeDocker()
        yield ProcessorService("test-processor", db, docker, interval=0.01), ContainerRepository(db), docker
    finally:
        await db.close()


async def add(repo, name, status, docker_id=None):
    record = ContainerRecord.new(name, "nginx")
    record.status = status
    record.docker_id = docker_id
    record.updated_at = "2000-01-01T00:00:00+00:00"
    await repo.insert(record)
    return record


@pytest.mark.asyncio
async def test_pending_container_is_created_in_docker():
    async with setup() as (processor, repo, docker):
        record = await add(repo, "web", "Pending")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert docker.calls == [("create", "web", "nginx")]
    assert stored.status == "Created"
    assert stored.docker_id == "docker-web"
    assert stored.updated_at != record.updated_at
    assert stored.created_at == record.created_at


@pytest.mark.asyncio
async def test_pending_create_failure_marks_failed():
    async with setup() as (processor, repo, docker):
        docker.failing.add("create")
        record = await add(repo, "web", "Pending")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert stored.status == "Failed"
    assert stored.docker_id is None


@pytest.mark.asyncio
async def test_created_container_is_started():
    async with setup() as (processor, repo, docker):
        record = await add(repo, "web", "Created", "d1")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert docker.calls == [("start", "d1")]
    assert stored.status == "Running"
    assert stored.docker_id == "d1"


@pytest.mark.asyncio
async def test_created_start_failure_marks_failed_keeping_docker_id():
    async with setup() as (processor, repo, docker):
        docker.failing.add("start")
        record = await add(repo, "web", "Created", "d1")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert stored.status == "Failed"
    assert stored.docker_id == "d1"


@pytest.mark.asyncio
async def test_created_without_docker_id_is_left_alone():
    async with setup() as (processor, repo, docker):
        record = await add(repo, "web", "Created")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert docker.calls == []
    assert stored == record


@pytest.mark.asyncio
async def test_running_container_still_running_is_unchanged():
    async with setup() as (processor, repo, docker):
        docker.statuses["d1"] = "running"
        record = await add(repo, "web", "Running", "d1")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert docker.calls == [("inspect", "d1")]
    assert stored == record


@pytest.mark.asyncio
async def test_running_container_that_exited_takes_docker_status():
    async with setup() as (processor, repo, docker):
        docker.statuses["d1"] = "exited"
        record = await add(repo, "web", "Running", "d1")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert stored.status == "exited"


@pytest.mark.asyncio
async def test_removing_stops_removes_and_deletes_even_if_stop_fails():
    async with setup() as (processor, repo, docker):
        docker.failing.add("stop")
        record = await add(repo, "web", "Removing", "d1")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert docker.calls == [("stop", "d1"), ("remove", "d1")]
    assert stored is None


@pytest.mark.asyncio
async def test_removing_without_docker_id_only_deletes_row():
    async with setup() as (processor, repo, docker):
        record = await add(repo, "web", "Removing")
        await processor.process_single_container(record)
        remaining = await repo.list_all()
    assert docker.calls == []
    assert remaining == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["Stopped", "Failed"])
async def test_stopped_and_failed_are_removed_from_docker_but_kept(status):
    async with setup() as (processor, repo, docker):
        docker.failing.add("remove")
        record = await add(repo, "web", status, "d1")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert docker.calls == [("remove", "d1")]
    assert stored == record


@pytest.mark.asyncio
async def test_unknown_status_does_nothing():
    async with setup() as (processor, repo, docker):
        record = await add(repo, "web", "exited", "d1")
        await processor.process_single_container(record)
        stored = await repo.get(record.id)
    assert docker.calls == []
    assert stored == record


@pytest.mark.asyncio
async def test_update_missing_container_raises():
    async with setup() as (processor, _, _):
        with pytest.raises(RecordNotFoundError):
            await processor.update_container_status("missing", "Running")


@pytest.mark.asyncio
async def test_update_sets_docker_id_only_when_given():
    async with setup() as (processor, repo, _):
        record = await add(repo, "web", "Pending", "d1")
        updated = await processor.update_container_status(record.id, "Created")
        stored = await repo.get(record.id)
    assert updated == stored
    assert stored.docker_id == "d1"
    assert stored.status == "Created"


@pytest.mark.asyncio
async def test_process_containers_continues_after_an_error():
    async with setup() as (processor, repo, docker):
        broken = await add(repo, "broken", "Running", "unknown-id")
        pending = await add(repo, "web", "Pending")
        await processor.process_containers()
        stored_broken = await repo.get(broken.id)
        stored_pending = await repo.get(pending.id)
    assert stored_broken == broken
    assert stored_pending.status == "Created"


@pytest.mark.asyncio
async def test_start_runs_until_shutdown():
    async with setup() as (processor, repo, _):
        record = await add(repo, "web", "Pending")
        task = asyncio.create_task(processor.start())
        for _ in range(500):
            if (await repo.get(record.id)).status == "Running":
                break
            await asyncio.sleep(0.01)
        processor.shutdown()
        await asyncio.wait_for(task, 2)
        stored = await repo.get(record.id)
    assert task.done()
    assert stored.status == "Running"
    assert stored.docker_id == "docker-web"


@pytest.mark.asyncio
async def test_start_after_shutdown_returns_without_processing():
    async with setup() as (processor, repo, docker):
        record = await add(repo, "web", "Pending")
        processor.shutdown()
        await asyncio.wait_for(processor.start(), 1)
        stored = await repo.get(record.id)
    assert docker.calls == []
    assert stored.status == "Pending"