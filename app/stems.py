"""Drummer - Stem processing stage.

Removes one stem from a track:
1. Decomposition: the separation engine writes one WAV per stem under
   {workspace}/stems/{input basename}/{stem}.wav
2. Selective remix: every stem except the excluded one is summed at unity
   weight (no normalization) and encoded to stereo MP3

Stem files are not checked before mixing. A missing stem makes the mixing
engine fail to open its input, which surfaces as ProcessingError rather
than a silently partial mix.

The stage holds no state between jobs.
"""

from __future__ import annotations

import logging
from pathlib import Path

from app import config
from app.engines import MediaEngines
from app.errors import EngineError, ProcessingError
from app.utils.paths import stem_path

logger = logging.getLogger(__name__)


def stem_names_for_model(model: str) -> tuple[str, ...]:
    """Stem categories a Spleeter model produces.

    Args:
        model: Model identifier, e.g. "spleeter:5stems-16kHz".

    Raises:
        ValueError: If the model family is unknown.
    """
    for family, stems in config.STEM_SETS.items():
        if family in model:
            return stems
    raise ValueError(f"Unknown separation model: {model}")


def build_mix_filter(input_count: int) -> str:
    """Build an ffmpeg amix graph summing all inputs at unity weight.

    >>> build_mix_filter(3)
    '[0:a][1:a][2:a]amix=inputs=3:duration=longest:normalize=0:weights=1 1 1'
    """
    if input_count < 1:
        raise ValueError("At least one input is required")
    labels = "".join(f"[{i}:a]" for i in range(input_count))
    weights = " ".join("1" for _ in range(input_count))
    return f"{labels}amix=inputs={input_count}:duration=longest:normalize=0:weights={weights}"


class StemRemover:
    """Produces a copy of a track with one stem left out."""

    def __init__(
        self,
        engines: MediaEngines,
        stem_names: tuple[str, ...] | None = None,
        excluded_stem: str = config.EXCLUDED_STEM,
    ):
        stem_names = stem_names or stem_names_for_model(config.SEPARATION_MODEL)
        if excluded_stem not in stem_names:
            raise ValueError(
                f"Excluded stem {excluded_stem!r} is not one of {', '.join(stem_names)}"
            )
        if len(stem_names) < 2:
            raise ValueError("Need at least two stems to remove one")
        self.engines = engines
        self.stem_names = stem_names
        self.excluded_stem = excluded_stem

    def kept_stems(self) -> list[str]:
        return [s for s in self.stem_names if s != self.excluded_stem]

    def remove_stem(self, input_file: Path, output_file: Path, stems_dir: Path) -> Path:
        """Run decomposition and selective remix.

        Args:
            input_file: Local audio file to process.
            output_file: Where the remixed file is written.
            stems_dir: Job-private directory for the engine's stem output.

        Returns:
            output_file.

        Raises:
            ProcessingError: If either engine fails. No output file is left.
        """
        input_file = Path(input_file)
        output_file = Path(output_file)

        try:
            self.engines.separate(input_file, stems_dir)
        except EngineError as e:
            logger.error("Separation failed for %s: %s", input_file.name, e.output)
            raise ProcessingError(detail=str(e)) from e

        stems = [stem_path(stems_dir, input_file, s) for s in self.kept_stems()]
        logger.info(
            "Mixing %d stems without %s for %s", len(stems), self.excluded_stem, input_file.name
        )

        output_file.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.engines.mix(stems, build_mix_filter(len(stems)), output_file)
        except EngineError as e:
            logger.error("Mixing failed for %s: %s", input_file.name, e.output)
            output_file.unlink(missing_ok=True)
            raise ProcessingError(detail=str(e)) from e

        if not output_file.is_file() or output_file.stat().st_size == 0:
            output_file.unlink(missing_ok=True)
            raise ProcessingError(detail=f"Mixing produced no output at {output_file}")

        return output_file
