"""Orchestrator for backend code generation."""
import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import List, Optional
from app.core.errors import SubprocessError
from app.schemas.config import BackendConfig
from app.generators.backend_gen.types import GeneratedFile, RenderedModule
from app.generators.backend_gen.render import (
    module_pairs,
    render_base_model,
    render_db_config,
    render_env,
    render_main_py,
    render_package_init,
    render_pagination,
    render_readme,
    render_requirements_txt,
    render_response_handler,
)
from app.generators.backend_gen.render_module import render_module
from app.generators.backend_gen.utils import module_names
from app.generators.backend_gen.writer import write_files

log = logging.getLogger(__name__)

CONFIG_FILENAME = "backend-config.json"


def module_files(rendered: RenderedModule) -> List[GeneratedFile]:
    """Place a rendered module triple at its conventional paths."""
    names = module_names(rendered.module_name)
    return [
        GeneratedFile(path=names.model_file, content=rendered.model_source),
        GeneratedFile(path=names.controller_file, content=rendered.controller_source),
        GeneratedFile(path=names.route_file, content=rendered.route_source),
    ]


def render_project_files(config: BackendConfig, secret: Optional[str] = None) -> List[GeneratedFile]:
    """Render every file of a backend except the per-module artifacts."""
    return [
        GeneratedFile(path="requirements.txt", content=render_requirements_txt(config.db_type)),
        GeneratedFile(path=".env", content=render_env(config, secret)),
        GeneratedFile(path="config/__init__.py", content=render_package_init("Database configuration.")),
        GeneratedFile(path="config/db.py", content=render_db_config(config)),
        GeneratedFile(path="models/__init__.py", content=render_package_init("Models package.")),
        GeneratedFile(path="models/base_model.py", content=render_base_model()),
        GeneratedFile(path="controllers/__init__.py", content=render_package_init("Controllers package.")),
        GeneratedFile(path="routes/__init__.py", content=render_package_init("Routes package.")),
        GeneratedFile(path="utils/__init__.py", content=render_package_init("Shared helpers.")),
        GeneratedFile(path="utils/pagination.py", content=render_pagination()),
        GeneratedFile(path="utils/response_handler.py", content=render_response_handler()),
        GeneratedFile(path="main.py", content=render_main_py(config.name, module_pairs(config))),
        GeneratedFile(path="README.md", content=render_readme(config)),
    ]


def render_backend_files(
    config: BackendConfig,
    secret: Optional[str] = None,
    enforce_unique: bool = False,
) -> List[GeneratedFile]:
    """
    Render the complete file set of a backend from its configuration.

    Args:
        config: Consolidated configuration document
        secret: JWT secret for the .env file; a fresh one is generated when omitted
        enforce_unique: Emit unique constraints for fields declared unique

    Returns:
        List of GeneratedFile objects
    """
    files = render_project_files(config, secret)
    for module_name, definition in module_pairs(config):
        rendered = render_module(module_name, definition, enforce_unique=enforce_unique)
        files.extend(module_files(rendered))
    return files


def generate_backend(config_path: Path, out_dir: Path, enforce_unique: bool = False) -> List[GeneratedFile]:
    """
    Generate a backend from a configuration document on disk.

    Args:
        config_path: Path to backend-config.json
        out_dir: Output directory for generated files

    Returns:
        List of GeneratedFile objects
    """
    with open(config_path, "r", encoding="utf-8") as f:
        config = BackendConfig.model_validate(json.load(f))

    files = render_backend_files(config, enforce_unique=enforce_unique)
    write_files(files, out_dir)
    return files


def run_generation_subprocess(
    config_path: Path,
    out_dir: Path,
    timeout: float,
    enforce_unique: bool = False,
) -> str:
    """Run ``generate_backend`` in a child interpreter and wait for it.

    Returns the child's stdout. Raises SubprocessError on non-zero exit or timeout.
    """
    cmd = [sys.executable, "-m", "app.generators.backend_gen", str(config_path), str(out_dir)]
    if enforce_unique:
        cmd.append("--enforce-unique")
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, check=False)
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode() if isinstance(e.stderr, bytes) else (e.stderr or "")
        raise SubprocessError(f"Code generation timed out after {timeout}s", stderr=stderr) from e

    if proc.returncode != 0:
        log.error("Code generation failed with exit code %d", proc.returncode)
        raise SubprocessError("Failed to generate files", stderr=proc.stderr, returncode=proc.returncode)
    return proc.stdout
