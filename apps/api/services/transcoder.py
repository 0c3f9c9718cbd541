"""HLS transcoding via ffmpeg."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import ffmpeg

from config import settings

logger = logging.getLogger(__name__)

MANIFEST_NAME = "index.m3u8"
SEGMENT_PATTERN = "segment_%03d.ts"


class TranscodeError(RuntimeError):
    """Raised when ffmpeg fails or produces an unusable segment set."""


@dataclass
class SegmentSet:
    """Manifest plus the segment files it names, in playback order."""

    manifest_path: Path
    segments: List[Path] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def files(self) -> List[Path]:
        return [*self.segments, self.manifest_path]


def read_segment_set(output_dir: Path) -> SegmentSet:
    """
    Load the SegmentSet ffmpeg wrote into output_dir.

    The manifest is located by its .m3u8 suffix; segments are the URIs it lists,
    so files ffmpeg left behind but did not reference are ignored.
    """
    manifests = sorted(output_dir.glob("*.m3u8"))
    if not manifests:
        raise TranscodeError(f"No HLS manifest produced in {output_dir}")
    manifest_path = manifests[0]

    segments: List[Path] = []
    duration = 0.0
    for raw_line in manifest_path.read_text().splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#EXTINF:"):
            try:
                duration += float(line[len("#EXTINF:"):].split(",", 1)[0])
            except ValueError:
                logger.warning("Unparseable EXTINF line in %s: %s", manifest_path, line)
            continue
        if line.startswith("#"):
            continue
        segment_path = output_dir / line
        if not segment_path.is_file():
            raise TranscodeError(f"Manifest references missing segment {line}")
        segments.append(segment_path)

    if not segments:
        raise TranscodeError(f"Manifest {manifest_path.name} lists no segments")
    return SegmentSet(manifest_path=manifest_path, segments=segments, duration_seconds=duration)


def transcode_to_hls(source_path: str, output_dir: str) -> SegmentSet:
    """
    Encode source_path into fixed-duration HLS segments under output_dir.

    Blocking; callers on the event loop should run it in a worker thread.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    manifest_path = out / MANIFEST_NAME

    try:
        # ffmpeg -i in -c:v libx264 -profile:v baseline -level 3.0 -c:a aac
        #   -start_number 0 -hls_time 10 -hls_list_size 0 -f hls index.m3u8
        (
            ffmpeg
            .input(source_path)
            .output(
                str(manifest_path),
                format="hls",
                vcodec="libx264",
                acodec="aac",
                start_number=0,
                hls_time=settings.HLS_SEGMENT_SECONDS,
                hls_list_size=0,
                hls_segment_filename=str(out / SEGMENT_PATTERN),
                **{"profile:v": settings.HLS_VIDEO_PROFILE, "level": settings.HLS_VIDEO_LEVEL},
            )
            .overwrite_output()
            .run(cmd=settings.FFMPEG_BINARY, quiet=True)
        )
    except ffmpeg.Error as e:
        detail = e.stderr.decode(errors="replace") if e.stderr else str(e)
        logger.error(f"Error transcoding {source_path}: {detail}")
        raise TranscodeError(f"ffmpeg failed for {Path(source_path).name}") from e

    segment_set = read_segment_set(out)
    logger.info(
        "Transcoded %s into %d segments (%.1fs)",
        Path(source_path).name,
        len(segment_set.segments),
        segment_set.duration_seconds,
    )
    return segment_set
