"""
Pull a single member out of a downloaded zip distribution
"""
import fnmatch
import io
import zipfile
import zlib

import structlog

from .errors import ValidationError

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 64 * 1024


def extract_member(data: bytes, pattern: str, url: str = None, max_size: int = None) -> bytes:
    """Return the first archive member whose name matches the glob ``pattern``.

    Reading stops with a ValidationError once more than ``max_size`` bytes
    have been decompressed.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as z:
            for info in z.infolist():
                if info.is_dir() or not fnmatch.fnmatch(info.filename, pattern):
                    continue
                logger.info("archive_member_found", url=url, member=info.filename,
                            size=info.file_size)
                if max_size is not None and info.file_size > max_size:
                    raise ValidationError(
                        f"Archive member too large: {info.file_size} bytes > {max_size} bytes", url=url)
                return _read_member(z, info, url, max_size)
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise ValidationError(f"Corrupt or non-zip archive: {e}", url=url)
    except NotImplementedError as e:
        raise ValidationError(f"Unsupported archive: {e}", url=url)
    except RuntimeError as e:
        # encrypted members
        raise ValidationError(f"Unreadable archive member: {e}", url=url)

    raise ValidationError(f"No archive member matches {pattern!r}", url=url)


def _read_member(z: zipfile.ZipFile, info: zipfile.ZipInfo, url: str, max_size: int) -> bytes:
    chunks = []
    received = 0
    with z.open(info) as src:
        while True:
            chunk = src.read(CHUNK_SIZE)
            if not chunk:
                break
            received += len(chunk)
            if max_size is not None and received > max_size:
                raise ValidationError(
                    f"Archive member too large: more than {max_size} bytes", url=url)
            chunks.append(chunk)
    return b''.join(chunks)
