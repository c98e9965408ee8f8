"""HTTP API for creating, listing, inspecting and removing containers."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone

import aiosqlite
from aiohttp import web

from .db import ContainerRepository, RecordNotFoundError
from .models import ContainerRecord, ContainerStatus, CreateContainerRequest

logger = logging.getLogger(__name__)

REPOSITORY_KEY = web.AppKey("repository", ContainerRepository)

_DATABASE_ERROR = "Database error"
_NOT_FOUND = "Container not found"
_JSON_CONTENT_TYPE_MESSAGE = "Expected request with `Content-Type: application/json`"


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _repository(request: web.Request) -> ContainerRepository:
    return request.app[REPOSITORY_KEY]


def _is_json_content_type(content_type: str) -> bool:
    return content_type == "application/json" or (
        content_type.startswith("application/") and content_type.endswith("+json")
    )


async def _find(request: web.Request) -> ContainerRecord | web.Response:
    """Look up the container named in the path, or build the error response."""
    container_id = request.match_info["id"]
    try:
        record = await _repository(request).get(container_id)
    except sqlite3.Error as exc:
        logger.error("Failed to fetch container: %s", exc)
        return _error(500, _DATABASE_ERROR)
    if record is None:
        return _error(404, _NOT_FOUND)
    return record


@web.middleware
async def _cors(request: web.Request, handler) -> web.StreamResponse:
    """Allow any origin, method and header, answering preflight requests directly."""
    if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
        response = web.Response(status=200)
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
        return response
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers["Access-Control-Allow-Origin"] = "*"
        exc.headers["Access-Control-Expose-Headers"] = "*"
        raise
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Expose-Headers"] = "*"
    return response


async def health_check(request: web.Request) -> web.Response:
    return web.json_response({"status": "healthy"})


async def create_container(request: web.Request) -> web.Response:
    """Store a pending container; the processor creates it in Docker later."""
    if not _is_json_content_type(request.content_type):
        return web.Response(status=415, text=_JSON_CONTENT_TYPE_MESSAGE)
    try:
        body = json.loads(await request.read())
    except ValueError as exc:
        return web.Response(status=400, text=f"Failed to parse the request body as JSON: {exc}")
    try:
        payload = CreateContainerRequest.from_dict(body)
    except ValueError as exc:
        return web.Response(
            status=422, text=f"Failed to deserialize the JSON body into the target type: {exc}"
        )

    logger.info("Creating container: %s", payload.name)
    record = ContainerRecord.from_request(payload)
    record.status = ContainerStatus.PENDING.value
    record.docker_id = None

    try:
        await _repository(request).insert(record)
    except sqlite3.Error as exc:
        logger.error("Failed to create container in database: %s", exc)
        return _error(500, _DATABASE_ERROR)

    response = record.to_response()
    logger.info("Container record created successfully: %s", response.id)
    return web.json_response(response.to_dict(), status=201)


async def list_containers(request: web.Request) -> web.Response:
    try:
        records = await _repository(request).list_all()
    except sqlite3.Error as exc:
        logger.error("Failed to fetch containers: %s", exc)
        return _error(500, _DATABASE_ERROR)
    return web.json_response([record.to_response().to_dict() for record in records])


async def get_container(request: web.Request) -> web.Response:
    found = await _find(request)
    if isinstance(found, web.Response):
        return found
    return web.json_response(found.to_response().to_dict())


async def delete_container(request: web.Request) -> web.Response:
    """Mark a container for removal; the processor performs the Docker side."""
    found = await _find(request)
    if isinstance(found, web.Response):
        return found
    found.status = ContainerStatus.REMOVING.value
    found.updated_at = datetime.now(timezone.utc).isoformat()
    try:
        await _repository(request).update(found)
    except (sqlite3.Error, RecordNotFoundError) as exc:
        logger.error("Failed to mark container for removal: %s", exc)
        return _error(500, _DATABASE_ERROR)
    logger.info("Container marked for removal: %s", found.id)
    return web.json_response({"message": "Container marked for removal"})


def create_app(db: aiosqlite.Connection) -> web.Application:
    """Build the web application serving the ``/v1`` routes over ``db``."""
    app = web.Application(middlewares=[_cors])
    app[REPOSITORY_KEY] = ContainerRepository(db)
    app.router.add_get("/v1/health", health_check)
    app.router.add_get("/v1/containers", list_containers)
    app.router.add_post("/v1/containers", create_container)
    app.router.add_get("/v1/containers/{id}", get_container)
    app.router.add_delete("/v1/containers/{id}", delete_container)
    return app