"""Metadata extraction for Typst documents.

Runs ``typst query`` against a document and returns the value of its first
``metadata`` element. The indexer treats this as best-effort: any failure is
reported as MetadataExtractionError and the caller falls back to defaults.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict

from typstindex.errors import MetadataExtractionError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _build_command(path: Path, *, typst_binary: str, root: Path) -> list[str]:
    return [
        typst_binary,
        "--color",
        "never",
        "query",
        "--format",
        "json",
        "--root",
        str(root),
        str(path),
        "metadata",
    ]


def parse_query_output(output: str) -> Dict[str, Any]:
    """Return the metadata dict from ``typst query`` JSON output.

    Compiler warnings may precede the JSON, so parsing starts at the first
    ``[``.
    """
    start = output.find("[")
    if start < 0:
        raise MetadataExtractionError("No JSON array in typst query output")
    try:
        result, _ = json.JSONDecoder().raw_decode(output[start:])
    except ValueError as exc:
        raise MetadataExtractionError(f"Invalid typst query output: {exc}") from exc

    if not isinstance(result, list):
        raise MetadataExtractionError("typst query output is not a list")
    if not result:
        return {}
    first = result[0]
    value = first.get("value") if isinstance(first, dict) else None
    if not isinstance(value, dict):
        raise MetadataExtractionError("First metadata element has no mapping value")
    return value


def extract_metadata(
    path: Path,
    *,
    typst_binary: str = "typst",
    root: Path | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """Extract the embedded metadata block from a Typst file."""
    if shutil.which(typst_binary) is None:
        raise MetadataExtractionError(f"typst binary not found: {typst_binary}")

    # Home as root so documents can import packages from XDG data dirs
    root = root if root is not None else Path.home()
    command = _build_command(Path(path), typst_binary=typst_binary, root=root)
    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise MetadataExtractionError(f"typst query timed out after {timeout}s for {path}") from exc
    except OSError as exc:
        raise MetadataExtractionError(f"Failed to run {typst_binary}: {exc}") from exc

    if completed.returncode != 0:
        LOGGER.debug("typst query stderr for %s: %s", path, completed.stderr.strip())
        raise MetadataExtractionError(
            f"typst query exited with status {completed.returncode} for {path}"
        )
    return parse_query_output(completed.stdout)
