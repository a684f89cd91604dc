"""Single-file conversion and sequential batch orchestration.

``convert_one`` turns one uploaded file into a ``ConversionOutcome`` and never
raises for per-file problems; ``convert_batch`` runs it over every upload in
order so one bad file cannot abort the rest.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from heic_converter.core.exceptions import (
    ArchiveError,
    ConverterError,
    EmptyOutputError,
    InvalidInputError,
)
from heic_converter.core.utils import has_accepted_extension, output_filename
from heic_converter.engine import codec as heic_codec
from heic_converter.engine.archive import ArchiveArtifact

logger = logging.getLogger(__name__)

Codec = Callable[[Path, Path, int], Path]


@dataclass(frozen=True)
class UploadedFile:
    """A file received at intake and stored under the intake directory."""

    path: Path
    original_name: str
    mimetype: str = "application/octet-stream"
    size: int = 0


@dataclass(frozen=True)
class ConversionSuccess:
    output_path: Path
    byte_size: int
    original_name: str
    elapsed_ms: int = 0

    ok = True


@dataclass(frozen=True)
class ConversionFailure:
    reason_code: str
    message: str
    original_name: str
    elapsed_ms: int = 0
    error: Optional[ConverterError] = field(default=None, compare=False, repr=False)

    ok = False


ConversionOutcome = Union[ConversionSuccess, ConversionFailure]


@dataclass
class BatchResult:
    """Outcomes of one request's conversions, in input order."""

    outcomes: List[ConversionOutcome] = field(default_factory=list)
    archive: Optional[ArchiveArtifact] = None
    archive_error: Optional[ArchiveError] = None

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def successes(self) -> List[ConversionSuccess]:
        return [outcome for outcome in self.outcomes if isinstance(outcome, ConversionSuccess)]

    @property
    def failures(self) -> List[ConversionFailure]:
        return [outcome for outcome in self.outcomes if isinstance(outcome, ConversionFailure)]

    @property
    def errors(self) -> List[Dict[str, Any]]:
        errors = [
            {
                "index": index,
                "file": outcome.original_name,
                "error_type": outcome.reason_code,
                "message": outcome.message,
            }
            for index, outcome in enumerate(self.outcomes)
            if isinstance(outcome, ConversionFailure)
        ]
        if self.archive_error is not None:
            errors.append({
                "index": None,
                "file": "archive",
                "error_type": self.archive_error.error_type,
                "message": self.archive_error.message,
            })
        return errors


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


def convert_one(
    uploaded: UploadedFile,
    destination_dir: Path,
    quality: int,
    codec: Codec = heic_codec.convert,
) -> ConversionOutcome:
    """Convert one uploaded HEIC/HEIF file into a JPEG under ``destination_dir``."""
    start = time.perf_counter()
    display_name = Path(uploaded.original_name or uploaded.path.name).name
    output_path: Optional[Path] = None
    try:
        if not uploaded.path.is_file():
            raise InvalidInputError.not_a_file(display_name)
        if not has_accepted_extension(uploaded.original_name):
            raise InvalidInputError.for_file(display_name)

        destination_dir = Path(destination_dir)
        destination_dir.mkdir(parents=True, exist_ok=True)
        output_path = destination_dir / output_filename(uploaded.path.name)

        codec(uploaded.path, output_path, quality)

        size = output_path.stat().st_size if output_path.exists() else 0
        if size == 0:
            output_path.unlink(missing_ok=True)
            raise EmptyOutputError.for_file(display_name)
    except ConverterError as exc:
        logger.warning("Conversion failed for %s: %s", display_name, exc.message)
        return ConversionFailure(
            reason_code=exc.error_type,
            message=exc.message,
            original_name=display_name,
            elapsed_ms=_elapsed_ms(start),
            error=exc,
        )
    except OSError as exc:
        if output_path is not None:
            output_path.unlink(missing_ok=True)
        logger.error("I/O error converting %s: %s", display_name, exc)
        error = ConverterError(f"'{display_name}' could not be written to disk.", original_error=exc)
        return ConversionFailure(
            reason_code="IOError",
            message=error.message,
            original_name=display_name,
            elapsed_ms=_elapsed_ms(start),
            error=error,
        )
    except Exception as exc:
        if output_path is not None:
            output_path.unlink(missing_ok=True)
        logger.exception("Unexpected error converting %s", display_name)
        error = ConverterError(f"'{display_name}' could not be converted.", original_error=exc)
        error.error_type = "UnexpectedError"
        error.status_code = 500
        return ConversionFailure(
            reason_code=error.error_type,
            message=error.message,
            original_name=display_name,
            elapsed_ms=_elapsed_ms(start),
            error=error,
        )

    elapsed = _elapsed_ms(start)
    logger.info("Converted %s -> %s (%.2fMB, %dms)", display_name, output_path.name, size / (1024 * 1024), elapsed)
    return ConversionSuccess(
        output_path=output_path,
        byte_size=size,
        original_name=display_name,
        elapsed_ms=elapsed,
    )


def convert_batch(
    uploaded_files: Sequence[UploadedFile],
    max_count: Optional[int],
    destination_dir: Path,
    quality: int,
    codec: Codec = heic_codec.convert,
) -> BatchResult:
    """Convert every upload sequentially, isolating per-file failures.

    ``max_count`` is enforced at intake; passing more files here is a
    programming error. ``None`` means no cap (command-line use).
    """
    if max_count is not None and len(uploaded_files) > max_count:
        raise ValueError(f"Batch of {len(uploaded_files)} files exceeds limit of {max_count}")

    result = BatchResult()
    for uploaded in uploaded_files:
        result.outcomes.append(convert_one(uploaded, destination_dir, quality, codec=codec))

    logger.info(
        "Batch complete: %d/%d converted, %d failed",
        result.succeeded,
        result.total,
        result.total - result.succeeded,
    )
    return result
