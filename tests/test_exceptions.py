import pytest

from shortsmith.exceptions import (
    ConfigurationError,
    DependencyMissingError,
    ErrorCategory,
    ExternalServiceError,
    JobNotFoundError,
    MediaToolError,
    RequestValidationError,
    ResourceError,
    ShortsmithError,
    UnknownProviderError,
)


def test_defaults_and_labels() -> None:
    err = ShortsmithError("boom")
    assert err.category == ErrorCategory.RUNTIME
    assert err.exit_code == 1
    assert err.label() == "Runtime error"


def test_configuration_error_category_and_code() -> None:
    err = ConfigurationError("config oops")
    assert err.category == ErrorCategory.CONFIG
    assert err.exit_code == 2
    assert err.label() == "Configuration error"


def test_dependency_error_category_and_code_passthrough() -> None:
    err = DependencyMissingError("missing", exit_code=9)
    assert err.category == ErrorCategory.DEPENDENCY
    assert err.exit_code == 9
    assert err.label() == "Dependency error"


def test_category_exit_codes() -> None:
    assert RequestValidationError("bad").exit_code == 4
    assert ExternalServiceError("down", service="azure_v1").exit_code == 5
    assert MediaToolError("ffmpeg failed.", timed_out=True).exit_code == 6
    assert ResourceError("gone").exit_code == 7


def test_unknown_provider_is_configuration_error() -> None:
    err = UnknownProviderError("nope")
    assert isinstance(err, ConfigurationError)
    assert err.message == "Unknown TTS provider 'nope'."


def test_job_not_found() -> None:
    err = JobNotFoundError("abc")
    assert err.exit_code == 1
    assert str(err) == "Job not found: abc"


def test_require_binary_names_purpose(monkeypatch) -> None:
    from shortsmith.utils import checks

    monkeypatch.setattr(checks.shutil, "which", lambda name: None if name == "ffprobe" else f"/usr/bin/{name}")

    assert checks.require_binary("ffmpeg") == "/usr/bin/ffmpeg"
    with pytest.raises(DependencyMissingError) as excinfo:
        checks.require_media_tools()
    assert excinfo.value.exit_code == 3
    assert "'ffprobe' (needed for rendering)" in excinfo.value.message
