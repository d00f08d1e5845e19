"""
Subtitle rendering service.

Writes reconciled subtitle lines as an Advanced SubStation Alpha (ASS)
file, which the final composite burns into the picture. Long lines are
wrapped with the same split-point heuristic the rule-based segmenter uses,
so numbers keep their units and closing punctuation never opens a row.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from shortsmith.domain.artifacts import SubtitleArtifact
from shortsmith.domain.request import SubtitleStyle
from shortsmith.services.timeline import Reconciliation, SubtitleLine
from shortsmith.utils import ffmpeg
from shortsmith.utils.logging import get_logger
from shortsmith.utils.text import wrap_text

log = get_logger(__name__)

STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, "
    "BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, "
    "BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding"
)
EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"

PREVIEW_TEXT = "預覽文字 Preview"


def format_ass_time(ms: int) -> str:
    """`H:MM:SS.cc` (centiseconds, truncated)."""
    ms = max(int(ms), 0)
    hours, rem = divmod(ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, rem = divmod(rem, 1000)
    return f"{hours}:{minutes:02d}:{seconds:02d}.{rem // 10:02d}"


def ass_color(hex_rgb: str, default: str = "00FFFFFF") -> str:
    """`RRGGBB` → `00BBGGRR` (alpha first, fully opaque)."""
    value = hex_rgb.strip().lstrip("#")
    if len(value) != 6:
        return default
    r, g, b = value[0:2], value[2:4], value[4:6]
    return f"00{b}{g}{r}".upper()


def escape_ass_text(text: str) -> str:
    # libass treats backslash sequences and braces as override tags.
    return text.replace("\\", "").replace("{", "\\{").replace("}", "\\}")


def format_dialogue_text(text: str, max_line_width: int) -> str:
    # Wrap before escaping so a break never lands inside an escaped brace.
    wrapped = wrap_text(text.replace("\\", ""), max_line_width)
    return "\\N".join(escape_ass_text(piece) for piece in wrapped.split("\n"))


def build_ass(lines: Sequence[SubtitleLine], style: SubtitleStyle, resolution: str) -> str:
    style = style.resolved(resolution)
    primary = ass_color(style.color)
    outline = ass_color(style.outline_color, default="00000000")

    out = [
        "[Script Info]",
        "ScriptType: v4.00+",
        "WrapStyle: 2",
        "",
        "[V4+ Styles]",
        STYLE_FORMAT,
        (
            f"Style: Default,{style.font},{style.size},&H{primary},&H00FFFFFF,&H{outline},"
            f"&H64000000,0,0,0,0,100,100,0,0,1,{style.outline_width:.1f},0,2,20,20,"
            f"{style.y_offset},1"
        ),
        "",
        "[Events]",
        EVENT_FORMAT,
    ]
    for line in lines:
        out.append(
            f"Dialogue: 0,{format_ass_time(line.start)},{format_ass_time(line.end)},Default,,0,0,0,,"
            f"{format_dialogue_text(line.text, style.max_line_width)}"
        )
    return "\n".join(out) + "\n"


@dataclass
class SubtitleService:
    timeout: float = 60.0

    def write(
        self,
        path: Path,
        reconciliation: Reconciliation,
        style: SubtitleStyle,
        resolution: str,
    ) -> SubtitleArtifact:
        path.write_text(build_ass(reconciliation.lines, style, resolution), encoding="utf-8")
        log.info(
            "Wrote %d subtitle line(s), scale=%.4f -> %s",
            len(reconciliation.lines),
            reconciliation.scale_factor,
            path,
        )
        return SubtitleArtifact(
            path=path,
            line_count=len(reconciliation.lines),
            scale_factor=reconciliation.scale_factor,
            end_ms=reconciliation.end_ms,
        )

    def preview(
        self,
        out: Path,
        style: SubtitleStyle,
        *,
        text: str = "",
        resolution: str = "1080x1920",
        background: str = "000000",
    ) -> Path:
        """Render one frame of `text` in `style` over a solid background (PNG)."""
        ffmpeg.ensure_ffmpeg()
        width, height = ffmpeg.parse_resolution(resolution)
        ass_path = out.with_suffix(".ass")
        line = SubtitleLine(text=text or PREVIEW_TEXT, start=0, end=5000)
        ass_path.write_text(build_ass([line], style, resolution), encoding="utf-8")
        cmd = ffmpeg.build_preview_cmd(
            ass_path,
            out,
            resolution=f"{width}x{height}",
            background=ffmpeg.normalize_color(background),
        )
        ffmpeg.run_ffmpeg(cmd, timeout=self.timeout)
        log.info("Subtitle preview -> %s", out)
        return out
