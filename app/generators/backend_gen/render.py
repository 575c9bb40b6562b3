"""Simple string templates for project-level files of a generated backend (Jinja2-free)."""
import secrets
import string
from dataclasses import dataclass
from typing import List, Optional
from app.schemas.config import BackendConfig, ModuleDefinition
from app.generators.backend_gen.render_module import enabled_handlers
from app.generators.backend_gen.utils import default_database_name, module_names, to_dashed

SECRET_ALPHABET = string.ascii_letters + string.digits
SECRET_LENGTH = 32


@dataclass(frozen=True)
class Dialect:
    url_scheme: str
    default_port: Optional[int]
    requirements: tuple


BASE_REQUIREMENTS = (
    "fastapi==0.115.6",
    "uvicorn[standard]==0.30.6",
    "pydantic==2.9.2",
    "sqlalchemy==2.0.36",
    "python-dotenv==1.0.1",
)

# mongodb has no SQLAlchemy dialect: the relational layer falls back to mysql and
# the mongo driver is shipped alongside for hand-written extensions.
DIALECTS = {
    "mysql": Dialect("mysql+pymysql", 3306, ("pymysql==1.1.1",)),
    "postgres": Dialect("postgresql+psycopg2", 5432, ("psycopg2-binary==2.9.9",)),
    "sqlite": Dialect("sqlite", None, ()),
    "mongodb": Dialect("mysql+pymysql", 3306, ("pymysql==1.1.1", "pymongo==4.8.0")),
}


def get_dialect(db_type: str) -> Dialect:
    return DIALECTS.get(db_type, DIALECTS["mysql"])


def generate_secret() -> str:
    """Random 32-character alphanumeric token for JWT_SECRET."""
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(SECRET_LENGTH))


def resolve_db_settings(config: BackendConfig) -> dict:
    """Apply per-field connection defaults."""
    db = config.db_config
    dialect = get_dialect(config.db_type)
    return {
        "host": db.host or "localhost",
        "port": db.port or dialect.default_port,
        "database": db.database or default_database_name(config.name),
        "username": db.username or "root",
        "password": db.password or "",
    }


def render_requirements_txt(db_type: str) -> str:
    """Generate requirements.txt content; the driver list follows the dialect."""
    lines = list(BASE_REQUIREMENTS) + list(get_dialect(db_type).requirements)
    return "\n".join(lines) + "\n"


def render_env(config: BackendConfig, secret: Optional[str] = None) -> str:
    """Generate .env content with a fresh secret unless one is supplied."""
    db = resolve_db_settings(config)
    return (
        "PORT=5000\n"
        f"DB_HOST={db['host']}\n"
        f"DB_PORT={db['port'] or ''}\n"
        f"DB_USER={db['username']}\n"
        f"DB_PASSWORD={db['password']}\n"
        f"DB_NAME={db['database']}\n"
        f"JWT_SECRET={secret or generate_secret()}\n"
    )


def render_db_config(config: BackendConfig) -> str:
    """Generate config/db.py content."""
    db = resolve_db_settings(config)
    dialect = get_dialect(config.db_type)
    if dialect.url_scheme == "sqlite":
        url_builder = [
            "def build_database_url() -> str:",
            "    return f\"sqlite:///./{DB_NAME}.db\"",
        ]
        connect_args = '{"check_same_thread": False}'
    else:
        url_builder = [
            "def build_database_url() -> str:",
            "    return (",
            f"        f\"{dialect.url_scheme}://{{quote_plus(DB_USER)}}:{{quote_plus(DB_PASSWORD)}}\"",
            "        f\"@{DB_HOST}:{DB_PORT}/{DB_NAME}\"",
            "    )",
        ]
        connect_args = "{}"

    lines = [
        "import logging",
        "import os",
        "from urllib.parse import quote_plus",
        "",
        "from dotenv import load_dotenv",
        "from sqlalchemy import create_engine, text",
        "from sqlalchemy.orm import sessionmaker",
        "",
        "load_dotenv()",
        "",
        "log = logging.getLogger(__name__)",
        "",
        f"DB_HOST = os.getenv(\"DB_HOST\", {db['host']!r})",
        f"DB_PORT = os.getenv(\"DB_PORT\") or {str(db['port'] or '')!r}",
        f"DB_USER = os.getenv(\"DB_USER\", {db['username']!r})",
        f"DB_PASSWORD = os.getenv(\"DB_PASSWORD\", {db['password']!r})",
        f"DB_NAME = os.getenv(\"DB_NAME\", {db['database']!r})",
        "",
        "",
        *url_builder,
        "",
        "",
        f"engine = create_engine(build_database_url(), pool_pre_ping=True, connect_args={connect_args})",
        "SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)",
        "",
        "",
        "def get_db():",
        "    db = SessionLocal()",
        "    try:",
        "        yield db",
        "    finally:",
        "        db.close()",
        "",
        "",
        "def connect_db() -> None:",
        "    with engine.connect() as conn:",
        "        conn.execute(text(\"SELECT 1\"))",
        "    log.info(\"Database connection established successfully\")",
        "",
    ]
    return "\n".join(lines)


def render_base_model() -> str:
    """Generate models/base_model.py content (identifier and audit timestamps)."""
    return """import uuid
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class BaseModelMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_dict(self):
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}
"""


def render_pagination() -> str:
    """Generate utils/pagination.py content."""
    return """import math
from dataclasses import dataclass


@dataclass
class Pagination:
    page: int
    limit: int
    offset: int

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit) if self.limit else 0


def get_pagination(page: int = 1, limit: int = 10) -> Pagination:
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else 10
    return Pagination(page=page, limit=limit, offset=(page - 1) * limit)
"""


def render_response_handler() -> str:
    """Generate utils/response_handler.py content."""
    return """from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def send_response(status: int = 200, success: bool = True, message: str = "", data: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=jsonable_encoder({"success": success, "message": message, "data": data}),
    )


def send_success(message: str = "", data: Any = None, status: int = 200) -> JSONResponse:
    return send_response(status=status, success=True, message=message, data=data)


def send_error(message: str = "", data: Any = None, status: int = 500) -> JSONResponse:
    return send_response(status=status, success=False, message=message, data=data)
"""


def render_main_py(app_name: str, modules: List[tuple]) -> str:
    """Generate main.py content.

    Args:
        app_name: Backend name used in the API title
        modules: (module name, ModuleDefinition) pairs, in generated order
    """
    lines = [
        "import logging",
        "from contextlib import asynccontextmanager",
        "",
        "from fastapi import FastAPI",
        "",
        "from config.db import connect_db, engine",
        "from models.base_model import Base",
    ]
    for module_name, _ in modules:
        slug = module_names(module_name).slug
        lines.append(f"from routes.{slug}_routes import router as {slug}_router")
    lines += [
        "",
        "logging.basicConfig(level=logging.INFO)",
        "",
        f"GENERATED_MODULES = {[name for name, _ in modules]!r}",
        "",
        "ENDPOINTS = {",
    ]
    for module_name, definition in modules:
        base = f"/api/{module_names(module_name).plural_slug}"
        lines.append(f"    {module_name!r}: [")
        for _, _, method, path in enabled_handlers(module_name, definition.apis):
            lines.append(f'        {{"method": "{method}", "path": "{base}{path}"}},')
        lines.append("    ],")
    lines += [
        "}",
        "",
        "",
        "@asynccontextmanager",
        "async def lifespan(app: FastAPI):",
        "    connect_db()",
        "    Base.metadata.create_all(bind=engine)",
        "    yield",
        "",
        "",
        f"app = FastAPI(title={(app_name + ' API')!r}, version=\"1.0.0\", lifespan=lifespan)",
        "",
    ]
    for module_name, _ in modules:
        names = module_names(module_name)
        lines.append(
            f'app.include_router({names.slug}_router, prefix="/api/{names.plural_slug}", tags=[{module_name!r}])'
        )
    lines += [
        "",
        "",
        '@app.get("/")',
        "def root():",
        f"    return {{\"message\": {('Welcome to ' + app_name + ' API')!r}}}",
        "",
        "",
        '@app.get("/api")',
        "def api_info():",
        '    return {"message": "API is running", "models": ENDPOINTS, "version": "1.0.0"}',
        "",
    ]
    return "\n".join(lines)


def render_readme(config: BackendConfig) -> str:
    """Generate README.md content."""
    modules = "\n".join(f"- `{name}`" for name in config.generated) or "- (none yet)"
    description = config.description or "Backend API for " + config.name
    return f"""# {config.name}

{description}

Generated FastAPI + SQLAlchemy backend ({config.db_type}).

## Running the API

```bash
pip install -r requirements.txt
uvicorn main:app --host 0.0.0.0 --port 5000
```

## Modules

{modules}
"""


def render_package_init(description: str) -> str:
    return f'"""{description}"""\n'


def module_pairs(config: BackendConfig) -> List[tuple]:
    """(name, definition) for every generated module that has a definition."""
    pairs = []
    for name in config.generated:
        definition: Optional[ModuleDefinition] = config.modules.get(name)
        if definition is not None:
            pairs.append((name, definition))
    return pairs


def package_name(config: BackendConfig) -> str:
    return to_dashed(config.name)
