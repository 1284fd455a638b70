"""
Shared helpers for the numbered pipeline scripts in `code/`.

Logging setup, external tool checks, subprocess execution and run metadata
follow the repository execution conventions: every step logs to
`<output_dir>/logs/pipeline.log` and stdout, and records a `metadata.json`
alongside its outputs.
"""

import json
import logging
import os
import shutil
import subprocess
import sys
import time
from pathlib import Path
from typing import IO, Dict, Iterable, List, Optional


def configure_logging(log_path: Path) -> None:
    """Configure logging to file and stdout."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_format = "%(asctime)s [%(levelname)s] %(message)s"
    handlers = [logging.FileHandler(log_path, mode="w"), logging.StreamHandler(sys.stdout)]
    logging.basicConfig(level=logging.INFO, format=log_format, handlers=handlers, force=True)


def check_dependencies(dependencies: Iterable[str]) -> None:
    """Ensure required external binaries are available."""
    missing = [exe for exe in dependencies if shutil.which(exe) is None]
    if missing:
        raise RuntimeError(
            "Missing required executables: "
            + ", ".join(missing)
            + ". Please install them and re-run."
        )


def run_command(
    command: Iterable[str | Path],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    stdout: Optional[IO[str]] = None,
) -> subprocess.CompletedProcess:
    """Wrapper around subprocess.run with logging and error propagation.

    Accepts Path objects in the command iterable and coerces them to strings.
    When `stdout` is given the command output is streamed into it, which is how
    tools that only write to stdout (minimap2) are redirected to a file.
    """
    cmd_list = [str(part) for part in command]
    logging.info("Running command: %s", " ".join(cmd_list))
    merged_env = os.environ.copy()
    if env:
        merged_env.update({k: str(v) for k, v in env.items()})
    return subprocess.run(
        cmd_list,
        cwd=str(cwd) if cwd else None,
        env=merged_env,
        check=True,
        stdout=stdout,
        text=True,
    )


def to_relative_path(path: Path, base: Path) -> str:
    """Return `path` as a string relative to `base` when possible."""
    try:
        return str(path.relative_to(base))
    except ValueError:
        return str(path)


def resolve_path(path: Path, base: Path) -> Path:
    """Anchor relative CLI paths at `base` (the repository root)."""
    return path if path.is_absolute() else base / path


def assemble_metadata(
    script_name: str,
    script_start: float,
    params: Dict[str, object],
    outputs: Dict[str, List[Path]],
    metadata_path: Path,
    repo_root: Path,
) -> None:
    """Write metadata.json capturing run context."""
    metadata = {
        "script": script_name,
        "date": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "runtime_seconds": time.time() - script_start,
        "parameters": params,
        "outputs": {
            key: [to_relative_path(path, repo_root) for path in paths]
            for key, paths in outputs.items()
        },
    }
    metadata_path.parent.mkdir(parents=True, exist_ok=True)
    metadata_path.write_text(json.dumps(metadata, indent=2))
