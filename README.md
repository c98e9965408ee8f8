# nebulet

nebulet is a small container service. It has two parts that run in one process:

- an HTTP API (aiohttp) where you submit the containers you want, each with a
  name and an image, and
- a background processor that every ten seconds reads the stored records and
  creates, starts, watches and removes the matching Docker containers.

The API only writes records to a SQLite database. The processor does the
Docker work.

## Container states

A record moves through these states (`nebulet.models.ContainerStatus`):

| State      | What the processor does on each pass                                    |
|------------|-------------------------------------------------------------------------|
| `Pending`  | creates the container in Docker; on success stores its Docker id and sets `Created`, on failure sets `Failed` |
| `Created`  | starts the container; sets `Running`, or `Failed` if starting fails      |
| `Running`  | asks Docker for the container's state; if it is no longer `running`, stores Docker's state string (for example `exited`) as the status |
| `Removing` | stops the container (30 second grace period), removes it from Docker, then deletes the record |
| `Stopped`, `Failed` | tries to remove the container from Docker; the record is kept   |

Any other status is logged as unknown and left alone. A failure with one
record is logged and does not stop the processing of the others. When the API
presents a record whose status is not one of the six states above, it shows
it as `Pending`.

## Installation

```
pip install .
```

## Running

```
nebulet
```

The command reads its settings from environment variables:

| Variable         | Default                            | Notes |
|------------------|------------------------------------|-------|
| `SERVER_HOST`    | `0.0.0.0`                          | must be an IP address |
| `SERVER_PORT`    | `8080`                             | an invalid value falls back to 8080 |
| `PROCESSOR_NAME` | `nebulet-processor`                | used in log messages |
| `LOG_LEVEL`      | `info`                             | `trace`, `debug`, `info`, `warn`, `error` or `1`–`5`; anything else means `info` |
| `LOG_JSON`       | unset                              | if set at all, each log line is a JSON object |
| `DATABASE_URL`   | `sqlite://./nebulet.db?mode=rwc`   | see below |

`DATABASE_URL` takes the form `sqlite://PATH` or `sqlite:PATH`, optionally
followed by `?mode=ro`, `rw`, `rwc` or `memory`. Without a mode the file must
already exist (`rw`); `rwc` creates it. A path of `:memory:` or `mode=memory`
gives an in-memory database. The `containers` table is created at start-up if
it is missing.

The processor talks to the Docker daemon over HTTP. It uses `DOCKER_HOST`
when that is set to a `unix://`, `tcp://` or `http://` address, and the Unix
socket `/var/run/docker.sock` otherwise. The service does not start if the
daemon does not answer.

Press Ctrl+C or send SIGTERM to stop the service. The command exits with
status 1 if start-up fails.

## HTTP API

All routes are under `/v1`. Every response allows any origin (CORS), and
preflight `OPTIONS` requests are answered directly.

| Method   | Path                  | Effect                                                  |
|----------|-----------------------|---------------------------------------------------------|
| `GET`    | `/v1/health`          | `{"status": "healthy"}`                                 |
| `GET`    | `/v1/containers`      | list every container                                    |
| `POST`   | `/v1/containers`      | store a `Pending` record, `{"name": ..., "image": ...}` |
| `GET`    | `/v1/containers/{id}` | one container, or 404 `{"error": "Container not found"}` |
| `DELETE` | `/v1/containers/{id}` | set the status to `Removing`; the processor does the rest |

Example:

```
curl -X POST localhost:8080/v1/containers \
     -H 'Content-Type: application/json' \
     -d '{"name": "web", "image": "nginx:latest"}'
```

The reply has status 201 and holds the new container's `id` (a UUID), `name`,
`image`, `status` (`"Pending"`), `created_at` and `updated_at` (UTC
timestamps ending in `Z`).

`POST /v1/containers` answers 415 when the body is not sent as JSON, 400 when
it cannot be parsed, and 422 when `name` or `image` is missing or not a
string. Database failures give 500 `{"error": "Database error"}`.

## Using it as a library

```python
from nebulet.models import ContainerRecord, ContainerStatus

record = ContainerRecord.new("web", "nginx:latest")
record.update_status(ContainerStatus.RUNNING)
print(record.to_response().to_dict())
```

- `nebulet.config.Config.from_env(environ=None)` builds the settings from a
  mapping (the process environment by default).
- `nebulet.db` has `establish_connection(config)`, `run_migrations(db)`,
  `sqlite_path_from_url(url)` and `ContainerRepository` with `insert`,
  `list_all`, `get`, `update` and `delete`.
- `nebulet.api.create_app(db)` builds the aiohttp application from an open
  `aiosqlite` connection.
- `nebulet.docker.DockerService` is an async client for the Docker calls the
  service uses; `DockerService.connect()` opens it and it raises
  `DockerError` on failure.
- `nebulet.processor.ProcessorService(name, db, docker, interval=10.0)` runs
  the reconciliation loop with `start()`, or one pass with
  `process_containers()`; `shutdown()` stops the loop.
- `nebulet.main.run(config)` runs the whole service; `main()` is the
  `nebulet` command.

## What it does not do

- There is no authentication on the HTTP API.
- A container is created with its image alone: no command, environment,
  published ports or volumes. Images are not pulled; if the image is not
  already present, creation fails and the record becomes `Failed`.
- There is no way through the API to stop, restart or change a container
  other than deleting it. `Stopped` and `Failed` records stay in the database
  until they are deleted.

## Tests

```
pip install .[test]
pytest
```