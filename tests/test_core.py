"""Tests for per-backend locks, principals, request parsing and log formatting."""
import logging
import threading
import pytest
from app.core import locks
from app.core.errors import ValidationError
from app.core.logging import ContextFormatter
from app.core.principal import Principal
from app.schemas.backends import BackendCreateRequest, ModuleCreateRequest, parse_request


def test_backend_lock_is_reentrant_and_per_backend():
    with locks.backend_lock("b1"):
        with locks.backend_lock("b1"):
            acquired = []

            def other_backend():
                with locks.backend_lock("b2"):
                    acquired.append(True)

            worker = threading.Thread(target=other_backend)
            worker.start()
            worker.join(timeout=1)
            assert acquired == [True]


def test_backend_lock_blocks_other_threads():
    acquired = []
    with locks.backend_lock("b3"):
        worker = threading.Thread(target=lambda: acquired.append(locks._lock_for("b3").acquire(timeout=0.05)))
        worker.start()
        worker.join()
    assert acquired == [False]


def test_forget_drops_lock():
    with locks.backend_lock("b4"):
        pass
    locks.forget("b4")
    assert "b4" not in locks._backend_locks


def test_principal_access():
    assert Principal(id="u1").can_access("u1")
    assert not Principal(id="u1").can_access("u2")
    assert Principal(id="a", is_admin=True).can_access("u2")


def test_parse_request_maps_errors():
    with pytest.raises(ValidationError) as exc_info:
        parse_request(BackendCreateRequest, {"name": ""})
    assert exc_info.value.status_code == 400
    assert "name" in exc_info.value.detail


def test_parse_request_accepts_aliases():
    req = parse_request(ModuleCreateRequest, {
        "moduleName": "Product",
        "fields": [{"name": "title", "type": "String", "unique": True}],
        "apis": {"getById": False},
    })
    assert req.module_name == "Product"
    assert req.apis.read_by_id is False
    assert req.apis.create is True
    assert req.fields[0].unique is True


def test_context_formatter_defaults():
    formatter = ContextFormatter("%(backend_id)s %(op)s %(message)s")
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
    assert formatter.format(record) == "- - hello"

    record.backend_id = "b1"
    record.op = "sync"
    assert formatter.format(record) == "b1 sync hello"
