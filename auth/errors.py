from __future__ import annotations


class InvalidArgumentError(ValueError):
    pass


class BackendIOError(OSError):
    """Transport failure or unusable response from the LSK backend."""


class ConfigError(RuntimeError):
    pass
