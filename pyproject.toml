[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nebulet"
version = "0.1.0"
description = "A small container service: an HTTP API that records desired containers and a processor that reconciles them with Docker."
requires-python = ">=3.10"
keywords = ["docker", "containers", "orchestration", "sqlite", "aiohttp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: No Input/Output (Daemon)",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "aiohttp>=3.9",
    "aiosqlite>=0.19",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
nebulet = "nebulet.main:main"

[tool.hatch.build.targets.wheel]
packages = ["nebulet"]

[tool.hatch.build.targets.sdist]
include = ["nebulet", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
