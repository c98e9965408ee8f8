"""Container service: an HTTP API that stores desired containers and a processor that reconciles them with Docker."""

__version__ = "0.1.0"

__all__ = ["__version__"]