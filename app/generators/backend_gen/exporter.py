"""Zip export of a backend, rendered fresh from its configuration."""
import io
import json
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from app.core.errors import StorageError
from app.schemas.config import BackendConfig
from app.generators.backend_gen.generator import CONFIG_FILENAME, render_backend_files
from app.generators.backend_gen.render import generate_secret, package_name
from app.generators.backend_gen.types import GeneratedFile

log = logging.getLogger(__name__)

SHARED_UTILITY_FILES = ("generate_id.py", "pagination.py", "response_handler.py")


@dataclass
class ExportArchive:
    filename: str
    stream: io.BytesIO
    files: List[str]


def collect_shared_utilities(shared_utils_dir: Optional[Path]) -> List[GeneratedFile]:
    """Shared utility files present on the host; missing ones are skipped."""
    if shared_utils_dir is None:
        return []
    found = []
    for name in SHARED_UTILITY_FILES:
        source = shared_utils_dir / name
        if source.is_file():
            found.append(GeneratedFile(path=f"utils/{name}", content=source.read_text(encoding="utf-8")))
    return found


def export_backend(
    config: BackendConfig,
    shared_utils_dir: Optional[Path] = None,
    enforce_unique: bool = False,
) -> ExportArchive:
    """Bundle a freshly rendered backend into an in-memory zip archive.

    The archive gets its own JWT secret, never the live one.
    """
    files = render_backend_files(config, secret=generate_secret(), enforce_unique=enforce_unique)
    # Host copies of shared utilities replace the rendered defaults of the same name
    overrides = {f.path: f for f in collect_shared_utilities(shared_utils_dir)}
    files = [overrides.pop(f.path, f) for f in files] + list(overrides.values())
    files.append(GeneratedFile(path=CONFIG_FILENAME, content=json.dumps(config.to_document(), indent=2)))

    stream = io.BytesIO()
    try:
        with zipfile.ZipFile(stream, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            for f in files:
                archive.writestr(f.path, f.content)
    except (OSError, zipfile.BadZipFile) as e:
        log.error("Archive write failed: %s", e, exc_info=True)
        raise StorageError("Failed to export backend", detail=str(e)) from e
    stream.seek(0)

    return ExportArchive(
        filename=f"{package_name(config)}-backend.zip",
        stream=stream,
        files=[f.path for f in files],
    )
