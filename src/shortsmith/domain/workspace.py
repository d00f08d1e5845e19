from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Workspace:
    """Private working directory of one job; every intermediate file lives here."""

    root: Path
    job_id: str

    @classmethod
    def for_job(cls, storage_path: str | Path, job_id: str) -> "Workspace":
        root = Path(storage_path).expanduser().resolve() / "jobs" / job_id
        return cls(root=root, job_id=job_id)

    def create(self) -> "Workspace":
        self.root.mkdir(parents=True, exist_ok=True)
        return self

    def path(self, name: str) -> Path:
        p = self.root / name
        p.parent.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def materials_dir(self) -> Path:
        d = self.root / "materials"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def segments_dir(self) -> Path:
        d = self.root / "segments"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def tts_dir(self) -> Path:
        d = self.root / "tts"
        d.mkdir(parents=True, exist_ok=True)
        return d

    def material(self, index: int, ext: str) -> Path:
        return self.materials_dir / f"mat_{index}{ext}"

    def segment(self, index: int) -> Path:
        return self.segments_dir / f"seg_{index}.mp4"

    def tts_clip(self, index: int, ext: str = ".wav") -> Path:
        return self.tts_dir / f"line_{index}{ext}"

    def tts_trimmed(self, index: int) -> Path:
        return self.tts_dir / f"line_{index}_trim.wav"

    @property
    def silence_wav(self) -> Path:
        return self.path("silence.wav")

    @property
    def voice_list(self) -> Path:
        return self.path("voice_list.txt")

    @property
    def segment_list(self) -> Path:
        return self.path("segment_list.txt")

    @property
    def voice_wav(self) -> Path:
        return self.path("voice.wav")

    @property
    def subtitle_ass(self) -> Path:
        return self.path("subtitle.ass")

    @property
    def video_mp4(self) -> Path:
        return self.path("video.mp4")

    def bgm(self, ext: str) -> Path:
        return self.path(f"bgm{ext}")

    @property
    def output_mp4(self) -> Path:
        return self.path("output.mp4")

    @property
    def run_manifest(self) -> Path:
        return self.path("run.json")
