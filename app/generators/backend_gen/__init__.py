"""Module-to-backend code generation."""
from app.generators.backend_gen.exporter import ExportArchive, export_backend
from app.generators.backend_gen.generator import generate_backend, render_backend_files, run_generation_subprocess
from app.generators.backend_gen.render_module import render_module

__all__ = [
    "ExportArchive",
    "export_backend",
    "generate_backend",
    "render_backend_files",
    "render_module",
    "run_generation_subprocess",
]
