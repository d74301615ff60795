"""Exceptions surfaced to the operator."""

from __future__ import annotations


class QontrolError(Exception):
    """Base class for errors that end a command with exit code 1."""


class ConfigError(QontrolError):
    """The profile store is unreadable or the working set is empty."""


class ProfileNotFound(QontrolError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"profile '{name}' not found")


class NoDefaultProfile(QontrolError):
    def __init__(self):
        super().__init__(
            "no default profile configured - use `qontrol profile add <name> --default` "
            "or `--profile <name>`"
        )


class ApiError(QontrolError):
    """Raised for any non-2xx response from the cluster REST API."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"API error (HTTP {status}): {body}")
