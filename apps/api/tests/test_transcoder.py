from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from services.transcoder import (
    MANIFEST_NAME,
    TranscodeError,
    read_segment_set,
    transcode_to_hls,
)


MANIFEST = (
    "#EXTM3U\n"
    "#EXT-X-VERSION:3\n"
    "#EXT-X-TARGETDURATION:10\n"
    "#EXTINF:10.000000,\n"
    "segment_000.ts\n"
    "#EXTINF:4.250000,\n"
    "segment_001.ts\n"
    "#EXT-X-ENDLIST\n"
)


def _write_output(directory: Path, manifest: str = MANIFEST) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "segment_000.ts").write_bytes(b"0")
    (directory / "segment_001.ts").write_bytes(b"1")
    (directory / MANIFEST_NAME).write_text(manifest)


def _flag_value(args, flag):
    return args[args.index(flag) + 1]


def test_read_segment_set_follows_manifest_order_and_sums_duration(tmp_path):
    _write_output(tmp_path)
    (tmp_path / "segment_999.ts").write_bytes(b"leftover")

    segment_set = read_segment_set(tmp_path)

    assert segment_set.manifest_path.name == MANIFEST_NAME
    assert [path.name for path in segment_set.segments] == ["segment_000.ts", "segment_001.ts"]
    assert segment_set.duration_seconds == pytest.approx(14.25)
    assert segment_set.files[-1] == segment_set.manifest_path


def test_read_segment_set_requires_manifest(tmp_path):
    (tmp_path / "segment_000.ts").write_bytes(b"0")
    with pytest.raises(TranscodeError, match="No HLS manifest"):
        read_segment_set(tmp_path)


def test_read_segment_set_rejects_missing_segment(tmp_path):
    _write_output(tmp_path)
    (tmp_path / "segment_001.ts").unlink()
    with pytest.raises(TranscodeError, match="segment_001.ts"):
        read_segment_set(tmp_path)


def test_read_segment_set_rejects_empty_playlist(tmp_path):
    (tmp_path / MANIFEST_NAME).write_text("#EXTM3U\n#EXT-X-ENDLIST\n")
    with pytest.raises(TranscodeError, match="lists no segments"):
        read_segment_set(tmp_path)


def test_transcode_to_hls_invokes_ffmpeg_with_hls_profile(tmp_path):
    output_dir = tmp_path / "hls"
    calls = []

    def fake_popen(args, **kwargs):
        calls.append(args)
        _write_output(output_dir)
        process = MagicMock()
        process.communicate.return_value = (b"", b"")
        process.poll.return_value = 0
        return process

    with patch("ffmpeg._run.subprocess.Popen", side_effect=fake_popen):
        segment_set = transcode_to_hls("/uploads/clip.mp4", str(output_dir))

    args = calls[0]
    assert args[0] == "ffmpeg"
    assert _flag_value(args, "-i") == "/uploads/clip.mp4"
    assert _flag_value(args, "-f") == "hls"
    assert _flag_value(args, "-vcodec") == "libx264"
    assert _flag_value(args, "-acodec") == "aac"
    assert _flag_value(args, "-profile:v") == "baseline"
    assert _flag_value(args, "-level") == "3.0"
    assert _flag_value(args, "-hls_time") == "10"
    assert _flag_value(args, "-hls_list_size") == "0"
    assert _flag_value(args, "-start_number") == "0"
    assert _flag_value(args, "-hls_segment_filename").endswith("segment_%03d.ts")
    assert str(output_dir / MANIFEST_NAME) in args
    assert "-y" in args
    assert len(segment_set.segments) == 2


def test_transcode_to_hls_wraps_ffmpeg_failure(tmp_path):
    process = MagicMock()
    process.communicate.return_value = (b"", b"Invalid data found when processing input")
    process.poll.return_value = 1

    with patch("ffmpeg._run.subprocess.Popen", return_value=process):
        with pytest.raises(TranscodeError, match="clip.mp4"):
            transcode_to_hls("/uploads/clip.mp4", str(tmp_path / "hls"))
