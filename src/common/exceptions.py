"""Exception hierarchy shared by the adapters, the verifier and the exec helpers."""

from __future__ import annotations

from typing import Any, Dict, Optional


class StorageVerifierError(Exception):
    """Base exception for every failure raised by this project."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
        return f"{self.message} ({context})"


class UnknownProviderError(StorageVerifierError, ValueError):
    """Raised when a provider identifier is not part of the supported vocabulary."""


class AuthenticationError(StorageVerifierError):
    """Raised when credentials are missing, malformed or rejected by the backend."""


class TransportError(StorageVerifierError):
    """Raised when a list, delete or HTTP call against a backend fails."""


class VerificationError(StorageVerifierError):
    """Raised when an object is absent while expected, or persists while it should be gone."""


class CommandError(StorageVerifierError):
    """Raised when an external command cannot be started or exits unexpectedly."""


class PipelineStageError(CommandError):
    """Raised when one stage of a process pipeline fails."""


class OutputParseError(StorageVerifierError):
    """Raised when the final pipeline stage's output cannot be read as lines."""


class VolumeLookupError(StorageVerifierError):
    """Raised when a PVC/PV lookup does not resolve to exactly one name."""


__all__ = [
    "StorageVerifierError",
    "UnknownProviderError",
    "AuthenticationError",
    "TransportError",
    "VerificationError",
    "CommandError",
    "PipelineStageError",
    "OutputParseError",
    "VolumeLookupError",
]
