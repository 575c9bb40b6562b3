"""File writer for backend generation."""
import json
import os
import tempfile
from pathlib import Path
from typing import Any, List
from app.generators.backend_gen.types import GeneratedFile


def write_files(files: List[GeneratedFile], out_dir: Path) -> None:
    """
    Write generated files to the output directory.

    Args:
        files: List of GeneratedFile objects to write
        out_dir: Base output directory path
    """
    out_dir.mkdir(parents=True, exist_ok=True)

    for file in files:
        file_path = out_dir / file.path
        # Create parent directories if needed
        file_path.parent.mkdir(parents=True, exist_ok=True)
        # Write file content
        file_path.write_text(file.content, encoding="utf-8")


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON through a temp file in the same directory, then replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
