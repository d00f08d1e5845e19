from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration for shortsmith.

    All settings are loaded from environment variables with the
    `SHORTSMITH_` prefix and optional `.env` support.

    This class is intentionally flat and explicit to keep runtime
    behavior predictable and debuggable.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHORTSMITH_",
        env_file=".env",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Storage / queue
    # ------------------------------------------------------------------
    storage_path: str = Field(
        default=".shortsmith",
        description="Root directory for the job store and per-job working directories.",
    )
    bgm_path: str = Field(
        default="assets/bgm",
        description="Directory holding preset background music (mp3/wav).",
    )
    queue_size: int = Field(
        default=10,
        description="Capacity of the job queue; producers block when it is full.",
    )

    # ------------------------------------------------------------------
    # AI segmentation (LLM)
    # ------------------------------------------------------------------
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key. Without it, rule-based segmentation is used.",
    )
    ai_model: str = Field(
        default="gpt-4o-mini",
        description="LLM model name used for subtitle segmentation.",
    )
    ai_max_retries: int = Field(
        default=3,
        description="Retries after the first failed AI segmentation attempt.",
    )
    ai_retry_delay_seconds: float = Field(
        default=5.0,
        description="Fixed delay between AI segmentation attempts.",
    )

    # ------------------------------------------------------------------
    # Speech synthesis
    # ------------------------------------------------------------------
    azure_tts_key: str | None = Field(
        default=None,
        description="Azure Speech subscription key.",
    )
    azure_tts_region: str | None = Field(
        default=None,
        description="Azure Speech region (e.g. eastasia).",
    )
    espeak_binary: str = Field(
        default="espeak",
        description="espeak/espeak-ng executable for the local TTS provider.",
    )
    tts_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for one synthesis request.",
    )
    silence_pad_seconds: float = Field(
        default=0.2,
        description="Silence appended after every narration line.",
    )

    # ------------------------------------------------------------------
    # Media engine
    # ------------------------------------------------------------------
    render_workers: int = Field(
        default=1,
        description="Parallel ffmpeg processes used to render visual segments.",
    )
    segment_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for rendering one visual segment.",
    )
    merge_timeout_seconds: float = Field(
        default=600.0,
        description="Timeout for merging segments with cross-fade transitions.",
    )
    final_timeout_seconds: float = Field(
        default=300.0,
        description="Timeout for the final composite render.",
    )
    download_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for downloading URL materials and background music.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )

    # ------------------------------------------------------------------
    # Public / safe export
    # ------------------------------------------------------------------
    def to_public_dict(self) -> dict:
        """
        Return a dictionary of non-sensitive settings suitable
        for logging or CLI display.
        """
        return {
            "storage_path": self.storage_path,
            "bgm_path": self.bgm_path,
            "queue_size": self.queue_size,
            "ai_model": self.ai_model,
            "ai_enabled": bool(self.openai_api_key),
            "ai_max_retries": self.ai_max_retries,
            "ai_retry_delay_seconds": self.ai_retry_delay_seconds,
            "azure_configured": bool(self.azure_tts_key and self.azure_tts_region),
            "espeak_binary": self.espeak_binary,
            "tts_timeout_seconds": self.tts_timeout_seconds,
            "silence_pad_seconds": self.silence_pad_seconds,
            "render_workers": self.render_workers,
            "segment_timeout_seconds": self.segment_timeout_seconds,
            "merge_timeout_seconds": self.merge_timeout_seconds,
            "final_timeout_seconds": self.final_timeout_seconds,
            "download_timeout_seconds": self.download_timeout_seconds,
            "log_level": self.log_level,
        }
