"""Error taxonomy for pipeline steps."""

from __future__ import annotations

from dataclasses import dataclass


class PipelineError(Exception):
    """Base error that aborts the current pipeline step."""


class ConfigurationError(PipelineError):
    """Missing or invalid runtime configuration."""


class AuthorizationError(PipelineError):
    """Missing or incorrect shared secret."""


class CursorNotFoundError(PipelineError):
    """Crawl stream was never bootstrapped."""

    def __init__(self, stream_id: str) -> None:
        super().__init__(f'crawl cursor missing stream_id="{stream_id}"')
        self.stream_id = stream_id


class CursorKindMismatchError(PipelineError):
    """Stream exists but paginates differently than the step expects."""

    def __init__(self, stream_id: str, expected: str, actual: str) -> None:
        super().__init__(
            f'crawl cursor stream_id="{stream_id}" is kind={actual}, expected kind={expected}',
        )
        self.stream_id = stream_id
        self.expected = expected
        self.actual = actual


@dataclass(slots=True)
class RemoteServiceError(PipelineError):
    """Non-2xx, malformed or failed response from the remote catalog service."""

    message: str
    status_code: int | None = None
    code: str = "remote_error"

    def __str__(self) -> str:
        return self.message
