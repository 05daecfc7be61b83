"""
Checksum helpers for uploaded import files.
"""
import hashlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Iterable

logger = logging.getLogger("app.import.checksum")

SUPPORTED_ALGORITHMS = ("md5", "sha256", "sha512")
READ_BLOCK_SIZE = 64 * 1024


class ChecksumAlgorithmError(ValueError):
    """Raised for hash algorithms the importer does not support."""


@dataclass(frozen=True)
class ChecksumResult:
    algorithm: str
    checksum: str
    file_size: int
    compute_time_ms: int


def _new_hash(algorithm: str):
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ChecksumAlgorithmError(f"Unsupported checksum algorithm: {algorithm}")
    return hashlib.new(algorithm)


def calculate_file_checksum(file_path: str, algorithm: str = "md5") -> ChecksumResult:
    """
    Calculate a checksum for a file without loading it into memory.

    Args:
        file_path: Path to the file
        algorithm: One of md5, sha256, sha512

    Returns:
        ChecksumResult with hex digest, file size and compute time
    """
    started = time.monotonic()
    digest = _new_hash(algorithm)

    try:
        file_size = os.path.getsize(file_path)
        with open(file_path, "rb") as f:
            for block in iter(lambda: f.read(READ_BLOCK_SIZE), b""):
                digest.update(block)
    except OSError as e:
        logger.error(f"Failed to calculate checksum for {file_path}: {e}")
        raise

    result = ChecksumResult(
        algorithm=algorithm,
        checksum=digest.hexdigest(),
        file_size=file_size,
        compute_time_ms=int((time.monotonic() - started) * 1000),
    )
    logger.debug(
        f"Calculated {algorithm} checksum for {file_path}: {result.checksum} "
        f"({result.file_size} bytes, {result.compute_time_ms}ms)"
    )
    return result


def calculate_bytes_checksum(data: bytes, algorithm: str = "md5") -> str:
    """Calculate checksum for in-memory data."""
    digest = _new_hash(algorithm)
    digest.update(data)
    return digest.hexdigest()


def calculate_string_checksum(data: str, algorithm: str = "md5") -> str:
    """Calculate checksum for a UTF-8 string."""
    return calculate_bytes_checksum(data.encode("utf-8"), algorithm)


def verify_file_checksum(file_path: str, expected_checksum: str, algorithm: str = "md5") -> bool:
    """
    Verify that a file matches an expected checksum.

    Unreadable files are reported as a mismatch.
    """
    try:
        result = calculate_file_checksum(file_path, algorithm)
    except OSError as e:
        logger.error(f"Failed to verify checksum for {file_path}: {e}")
        return False
    return result.checksum == expected_checksum.strip().lower()


def calculate_multiple_checksums(
    file_path: str, algorithms: Iterable[str] = ("md5", "sha256")
) -> Dict[str, str]:
    """Calculate several checksums in a single pass over the file."""
    digests = {algorithm: _new_hash(algorithm) for algorithm in algorithms}

    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(READ_BLOCK_SIZE), b""):
            for digest in digests.values():
                digest.update(block)

    return {algorithm: digest.hexdigest() for algorithm, digest in digests.items()}
