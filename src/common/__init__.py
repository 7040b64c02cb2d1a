"""
Common helpers
--------------

Building blocks shared by the verifier and the volume lookups:
exception hierarchy, fixed-interval polling and external process
execution (single command or three-stage pipeline).
"""

from .exceptions import (  # noqa: F401
    AuthenticationError,
    CommandError,
    OutputParseError,
    PipelineStageError,
    StorageVerifierError,
    TransportError,
    UnknownProviderError,
    VerificationError,
    VolumeLookupError,
)
from .exec import CommandResult, OsCommandLine, run_command, run_pipeline  # noqa: F401
from .retry import RetryPolicy, poll_until  # noqa: F401

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
    "OsCommandLine",
    "CommandResult",
    "run_command",
    "run_pipeline",
    "RetryPolicy",
    "poll_until",
]
