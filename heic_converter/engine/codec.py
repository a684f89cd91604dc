"""HEIC/HEIF decoding and JPEG encoding through Pillow."""

import io
import logging
from pathlib import Path

import pillow_heif
from PIL import Image, ImageOps, UnidentifiedImageError

from heic_converter.core.exceptions import CodecError
from heic_converter.core.utils import DEFAULT_JPEG_QUALITY, normalize_quality

logger = logging.getLogger(__name__)

pillow_heif.register_heif_opener()

# Pillow format names reported for HEIC/HEIF containers.
HEIF_FORMATS = frozenset({"HEIF", "HEIC"})


def encode_jpeg_bytes(input_path: Path, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Decode a HEIC/HEIF image and return progressive JPEG bytes.

    Raises:
        CodecError: the file is not a decodable HEIF image or the encoder failed.
    """
    input_path = Path(input_path)
    quality = normalize_quality(quality)
    try:
        with Image.open(input_path) as image:
            if image.format not in HEIF_FORMATS:
                raise CodecError.for_file(input_path.name, f"not a HEIC/HEIF image (detected {image.format})")
            image = ImageOps.exif_transpose(image)
            if image.mode != "RGB":
                image = image.convert("RGB")
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=quality, progressive=True, optimize=True)
    except CodecError:
        raise
    except Image.DecompressionBombError as exc:
        raise CodecError.for_file(
            input_path.name, "image dimensions exceed the decoder pixel limit", original_error=exc
        ) from exc
    except MemoryError as exc:
        raise CodecError.for_file(input_path.name, "image too large to decode", original_error=exc) from exc
    except UnidentifiedImageError as exc:
        raise CodecError.for_file(input_path.name, "unrecognized image data", original_error=exc) from exc
    except (OSError, ValueError, SyntaxError) as exc:
        raise CodecError.for_file(input_path.name, original_error=exc) from exc
    return buffer.getvalue()


def convert(input_path: Path, output_path: Path, quality: int = DEFAULT_JPEG_QUALITY) -> Path:
    """Convert ``input_path`` to a JPEG written at ``output_path``.

    The destination directory must already exist.
    """
    payload = encode_jpeg_bytes(input_path, quality)
    output_path = Path(output_path)
    output_path.write_bytes(payload)
    logger.debug("Encoded %s -> %s (%d bytes, q=%s)", Path(input_path).name, output_path.name, len(payload), quality)
    return output_path
