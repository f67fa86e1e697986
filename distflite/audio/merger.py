"""Ordered merge of per-chunk WAV result artifacts.

Responsibilities:
- Merge result artifacts in original chunk order, never completion order.
- Treat the first artifact's audio spec as authoritative and reject mismatches.
- Copy frames in bounded blocks so memory use does not grow with audio length.
"""

from __future__ import annotations

import wave
from collections.abc import Callable, Sequence
from pathlib import Path

from loguru import logger

from ..errors import FormatMismatchError, IoError, ValidationError
from ..models.datatypes import AudioSpec, MergedAudio, ResultArtifact


def read_audio_spec(reader: wave.Wave_read) -> AudioSpec:
    """Return the audio spec of an open WAV reader."""

    return AudioSpec(
        sample_rate=reader.getframerate(),
        bits_per_sample=reader.getsampwidth() * 8,
        channels=reader.getnchannels(),
    )


class WaveAggregator:
    """Concatenate WAV sample streams into one output artifact."""

    def __init__(self, block_frames: int = 65536) -> None:
        """Initialize the merger with the per-copy frame block size."""

        if block_frames <= 0:
            raise ValueError("`block_frames` must be a positive integer.")
        self.block_frames = block_frames

    def combine(
        self,
        results: Sequence[ResultArtifact],
        output_path: Path,
        cancel_check: Callable[[], bool] | None = None,
    ) -> MergedAudio | None:
        """Merge result artifacts into `output_path` ordered by chunk index.

        `cancel_check` is consulted between frame blocks. When it returns true
        the partial output is removed and `None` is returned.

        Raises:
            ValidationError: If there are no results to combine.
            FormatMismatchError: If an artifact's spec differs from the first one.
            IoError: If an artifact cannot be read or the output cannot be written.
        """

        if not results:
            raise ValidationError("no results to combine")

        should_stop = cancel_check or (lambda: False)
        ordered = sorted(results, key=lambda item: item.chunk_index)
        spec: AudioSpec | None = None
        frame_count = 0
        writer: wave.Wave_write | None = None
        cancelled = False
        try:
            for result in ordered:
                if should_stop():
                    cancelled = True
                    break
                with self._open_result(result) as reader:
                    part_spec = read_audio_spec(reader)
                    if writer is None:
                        spec = part_spec
                        writer = self._open_output(output_path, reader)
                    elif part_spec != spec:
                        raise FormatMismatchError(
                            f"audio format of chunk {result.chunk_index} "
                            f"({part_spec.describe()}) does not match the first chunk "
                            f"({spec.describe()}): '{result.path}'",
                            chunk_index=result.chunk_index,
                            path=result.path,
                        )
                    frame_count += self._copy_frames(
                        reader, writer, result, output_path, should_stop
                    )
        finally:
            if writer is not None:
                self._close_output(writer, output_path)

        if cancelled or should_stop():
            if writer is not None:
                self._discard_output(output_path)
            logger.info("Combine cancelled after {} frames", frame_count)
            return None

        logger.info(
            "Combined {} parts ({} frames, {}) into '{}'",
            len(ordered),
            frame_count,
            spec.describe(),
            output_path,
        )
        return MergedAudio(
            path=output_path,
            spec=spec,
            frame_count=frame_count,
            part_count=len(ordered),
        )

    @staticmethod
    def _open_result(result: ResultArtifact) -> wave.Wave_read:
        """Open one result artifact for reading."""

        try:
            return wave.open(str(result.path), "rb")
        except FileNotFoundError as exc:
            raise IoError(
                f"result artifact of chunk {result.chunk_index} is missing",
                path=result.path,
            ) from exc
        except (wave.Error, EOFError) as exc:
            raise IoError(
                f"parsing WAVE result of chunk {result.chunk_index} failed ({exc})",
                path=result.path,
            ) from exc
        except OSError as exc:
            raise IoError(
                f"reading result of chunk {result.chunk_index} failed ({exc.strerror})",
                path=result.path,
            ) from exc

    @staticmethod
    def _open_output(output_path: Path, first: wave.Wave_read) -> wave.Wave_write:
        """Create the destination artifact with the first artifact's spec."""

        try:
            writer = wave.open(str(output_path), "wb")
        except OSError as exc:
            raise IoError(
                f"creating output WAVE file failed ({exc.strerror})",
                path=output_path,
            ) from exc
        writer.setnchannels(first.getnchannels())
        writer.setsampwidth(first.getsampwidth())
        writer.setframerate(first.getframerate())
        return writer

    def _copy_frames(
        self,
        reader: wave.Wave_read,
        writer: wave.Wave_write,
        result: ResultArtifact,
        output_path: Path,
        should_stop: Callable[[], bool],
    ) -> int:
        """Stream frames of `reader` into `writer` and return the frame count."""

        copied = 0
        while not should_stop():
            try:
                frames = reader.readframes(self.block_frames)
            except (wave.Error, EOFError, OSError) as exc:
                raise IoError(
                    f"reading audio samples from chunk {result.chunk_index} failed ({exc})",
                    path=result.path,
                ) from exc
            if not frames:
                return copied
            try:
                writer.writeframes(frames)
            except OSError as exc:
                raise IoError(
                    f"writing audio samples failed ({exc.strerror})",
                    path=output_path,
                ) from exc
            copied += len(frames) // (reader.getsampwidth() * reader.getnchannels())
        return copied

    @staticmethod
    def _discard_output(output_path: Path) -> None:
        try:
            output_path.unlink(missing_ok=True)
        except OSError as exc:
            raise IoError(
                f"removing partial output failed ({exc.strerror})",
                path=output_path,
            ) from exc

    @staticmethod
    def _close_output(writer: wave.Wave_write, output_path: Path) -> None:
        try:
            writer.close()
        except OSError as exc:
            raise IoError(
                f"finalizing output WAVE file failed ({exc.strerror})",
                path=output_path,
            ) from exc
