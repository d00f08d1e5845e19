from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    CONFIG = "config"
    DEPENDENCY = "dependency"
    RUNTIME = "runtime"
    VALIDATION = "validation"
    EXTERNAL_SERVICE = "external_service"
    MEDIA_TOOL = "media_tool"
    RESOURCE = "resource"


DEFAULT_EXIT_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.RUNTIME: 1,
    ErrorCategory.CONFIG: 2,
    ErrorCategory.DEPENDENCY: 3,
    ErrorCategory.VALIDATION: 4,
    ErrorCategory.EXTERNAL_SERVICE: 5,
    ErrorCategory.MEDIA_TOOL: 6,
    ErrorCategory.RESOURCE: 7,
}


@dataclass
class ShortsmithError(Exception):
    """Base exception for shortsmith with standardized categories."""

    message: str
    category: ErrorCategory = ErrorCategory.RUNTIME
    exit_code: int | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.exit_code is None:
            self.exit_code = DEFAULT_EXIT_CODES.get(self.category, 1)

    def label(self) -> str:
        return {
            ErrorCategory.CONFIG: "Configuration error",
            ErrorCategory.DEPENDENCY: "Dependency error",
            ErrorCategory.RUNTIME: "Runtime error",
            ErrorCategory.VALIDATION: "Validation error",
            ErrorCategory.EXTERNAL_SERVICE: "External service error",
            ErrorCategory.MEDIA_TOOL: "Media tool error",
            ErrorCategory.RESOURCE: "Resource error",
        }.get(self.category, "Error")


class DependencyMissingError(ShortsmithError):
    """Raised when a required external dependency is missing."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.DEPENDENCY,
            exit_code=exit_code,
        )


class ConfigurationError(ShortsmithError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.CONFIG,
            exit_code=exit_code,
        )


class UnknownProviderError(ConfigurationError):
    """Raised when a TTS provider name is not in the provider table."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown TTS provider '{name}'.")
        self.name = name


class RequestValidationError(ShortsmithError):
    """Raised when a job request is malformed; the job is never created."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.VALIDATION)


class ExternalServiceError(ShortsmithError):
    """Raised when a network service (TTS, AI segmentation) fails."""

    def __init__(self, message: str, *, service: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.EXTERNAL_SERVICE)
        self.service = service


class MediaToolError(ShortsmithError):
    """Raised when ffmpeg/ffprobe exits non-zero or times out."""

    def __init__(
        self,
        message: str,
        *,
        stderr: str = "",
        timed_out: bool = False,
    ) -> None:
        super().__init__(message, category=ErrorCategory.MEDIA_TOOL)
        self.stderr = stderr
        self.timed_out = timed_out


class ResourceError(ShortsmithError):
    """Raised when a material, BGM file or other input resource is unusable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.RESOURCE)


class JobNotFoundError(ShortsmithError):
    """Raised when a job id is not present in the store."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id
