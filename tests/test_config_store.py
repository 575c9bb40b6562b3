"""Tests for the configuration document, legacy documents and the legacy migration."""
import json
from unittest import mock
import pytest
from app.core.errors import NotFoundError, StorageError
from app.schemas.config import LEGACY_SCHEMA_VERSION, BackendConfig
from app.workspace.config_store import BACKUP_DIRNAME, LEGACY_GENERATED_FILENAME, LEGACY_MODULES_FILENAME
from conftest import ADMIN, OTHER, OWNER

LEGACY_MODULES = {
    "Product": {
        "fields": {"title": {"type": "String", "unique": True}, "price": {"type": "Number"}},
        "apis": {"post": True, "get": True, "getById": True, "put": True, "delete": False},
        "userId": "user-1",
    },
}


def _legacy_tree(backend_dir, modules=LEGACY_MODULES, generated=("Product",)):
    """Scaffold a backend the way it was stored before consolidation."""
    for sub in ("models", "controllers", "routes", "config", "utils"):
        (backend_dir / sub).mkdir(parents=True, exist_ok=True)
    (backend_dir / LEGACY_MODULES_FILENAME).write_text(
        modules if isinstance(modules, str) else json.dumps(modules), encoding="utf-8")
    (backend_dir / LEGACY_GENERATED_FILENAME).write_text(json.dumps({"generated": list(generated)}), encoding="utf-8")
    (backend_dir / ".env").write_text("JWT_SECRET=old\n", encoding="utf-8")
    (backend_dir / "main.py").write_text("# old entry point\n", encoding="utf-8")
    (backend_dir / "config" / "db.py").write_text("# old db\n", encoding="utf-8")
    (backend_dir / "controllers" / "product_controller.py").write_text("# old controller\n", encoding="utf-8")
    (backend_dir / "routes" / "product_routes.py").write_text("# old routes\n", encoding="utf-8")
    (backend_dir / "models" / "product.py").write_text("# old model\n", encoding="utf-8")
    (backend_dir / "models" / "stale.py").write_text("# stale model\n", encoding="utf-8")


class TestRecords:
    def test_owner_and_admin_can_load(self, store, make_backend):
        backend = make_backend()
        assert store.get_backend(backend.id, OWNER) is backend
        assert store.get_backend(backend.id, ADMIN) is backend

    def test_other_user_gets_not_found(self, store, make_backend):
        backend = make_backend()
        with pytest.raises(NotFoundError) as exc_info:
            store.get_backend(backend.id, OTHER)
        assert exc_info.value.message == "Backend not found or you do not have access"

    def test_unknown_id_gets_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.get_backend("nope", OWNER)

    def test_list_is_scoped_to_owner(self, store, make_backend):
        make_backend(name="A")
        make_backend(name="B")
        make_backend(name="C", user_id=OTHER.id, owner_name=OTHER.username)

        mine, total = store.list_backends(OWNER)
        assert total == 2 and {b.name for b in mine} == {"A", "B"}

        everything, total = store.list_backends(ADMIN, limit=2)
        assert total == 3 and len(everything) == 2

    def test_config_from_record_accepts_list_fields_and_string_db_config(self, store, make_backend):
        backend = make_backend(
            modules={"Tag": {"fields": [{"name": "label", "type": "String", "unique": True}]}},
            generated_modules={"generated": ["Tag"]},
            db_config='{"host": "db", "port": 5433}',
        )
        config = store.config_from_record(backend)
        assert config.modules["Tag"].fields["label"].unique is True
        assert config.db_config.host == "db" and config.db_config.port == 5433
        assert config.generated == ["Tag"]


class TestDocuments:
    def test_save_stamps_updated_at_and_round_trips(self, store, directories, make_backend):
        backend = make_backend()
        backend_dir = directories.create(directories.dir_for(backend))
        config = store.config_from_record(backend)
        config.updated_at = None

        store.save(backend_dir, config)

        assert config.updated_at is not None
        loaded = store.read_document(backend_dir)
        assert loaded.name == "Shop"
        assert loaded.updated_at == config.updated_at
        assert not [p for p in backend_dir.iterdir() if p.name.startswith(".backend-config")]

    def test_corrupt_document_reads_as_none(self, store, tmp_path):
        (tmp_path / "backend-config.json").write_text("{not json", encoding="utf-8")
        assert store.read_document(tmp_path) is None

    def test_document_with_wrong_shape_reads_as_none(self, store, tmp_path):
        (tmp_path / "backend-config.json").write_text(json.dumps({"modules": {}}), encoding="utf-8")
        assert store.read_document(tmp_path) is None

    def test_read_legacy_defaults(self, store, tmp_path):
        assert store.read_legacy(tmp_path) == ({}, [])

        (tmp_path / LEGACY_MODULES_FILENAME).write_text("{{{", encoding="utf-8")
        (tmp_path / LEGACY_GENERATED_FILENAME).write_text(json.dumps({"generated": ["A"]}), encoding="utf-8")
        assert store.read_legacy(tmp_path) == ({}, ["A"])

        (tmp_path / LEGACY_GENERATED_FILENAME).write_text(json.dumps(["not", "a", "dict"]), encoding="utf-8")
        assert store.read_legacy(tmp_path)[1] == []

    def test_load_prefers_document_for_consolidated(self, store, directories, make_backend):
        backend = make_backend()
        backend_dir = directories.create(directories.dir_for(backend))
        config = store.config_from_record(backend)
        config.description = "from disk"
        store.save(backend_dir, config)

        assert store.load(backend).description == "from disk"

    def test_load_uses_record_for_legacy(self, store, directories, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION, description="from record")
        _legacy_tree(directories.dir_for(backend))
        assert store.load(backend).description == "from record"

    def test_save_modules_keeps_legacy_shape(self, store, directories, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION)
        backend_dir = directories.dir_for(backend)
        _legacy_tree(backend_dir)
        config = store.config_from_record(backend)
        config.modules = BackendConfig.model_validate({"name": "x", "modules": LEGACY_MODULES}).modules
        config.generated_modules.generated = ["Product"]

        store.save_modules(backend, backend_dir, config)

        assert not (backend_dir / "backend-config.json").exists()
        assert json.loads((backend_dir / LEGACY_GENERATED_FILENAME).read_text()) == {"generated": ["Product"]}
        saved = json.loads((backend_dir / LEGACY_MODULES_FILENAME).read_text())
        assert saved["Product"]["apis"]["delete"] is False
        assert saved["Product"]["fields"]["title"]["unique"] is True


class TestMigration:
    def test_migrates_legacy_tree(self, store, directories, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION)
        backend_dir = directories.dir_for(backend)
        _legacy_tree(backend_dir)

        outcome = store.migrate_legacy_to_consolidated(backend)

        assert outcome.status == "migrated"
        document = json.loads((backend_dir / "backend-config.json").read_text())
        assert document["schemaVersion"] == 2
        assert document["generatedModules"] == {"generated": ["Product"]}
        assert set(document["modules"]["Product"]["fields"]) == {"title", "price"}

        # legacy files archived, then removed
        backup = backend_dir / BACKUP_DIRNAME
        assert (backup / LEGACY_MODULES_FILENAME).exists()
        assert (backup / "controllers" / "product_controller.py").exists()
        assert (backup / ".env").read_text() == "JWT_SECRET=old\n"
        assert not (backend_dir / LEGACY_MODULES_FILENAME).exists()
        assert not (backend_dir / "controllers").exists()
        assert not (backend_dir / "main.py").exists()

        # model files regenerated, stale ones pruned
        assert "class Product(" in (backend_dir / "models" / "product.py").read_text()
        assert (backend_dir / "models" / "base_model.py").exists()
        assert not (backend_dir / "models" / "stale.py").exists()

        assert backend.schema_version == 2
        assert backend.generated_names == ["Product"]

    def test_second_run_is_a_noop(self, store, directories, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION)
        backend_dir = directories.dir_for(backend)
        _legacy_tree(backend_dir)
        store.migrate_legacy_to_consolidated(backend)
        before = (backend_dir / "backend-config.json").read_text()

        outcome = store.migrate_legacy_to_consolidated(backend)

        assert outcome.status == "skipped"
        assert outcome.reason == "Already consolidated"
        assert (backend_dir / "backend-config.json").read_text() == before
        assert [p.name for p in backend_dir.iterdir() if p.name.startswith(BACKUP_DIRNAME)] == [BACKUP_DIRNAME]
        assert (backend_dir / BACKUP_DIRNAME / LEGACY_MODULES_FILENAME).exists()

    def test_corrupt_legacy_modules_do_not_abort(self, store, directories, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION)
        backend_dir = directories.dir_for(backend)
        _legacy_tree(backend_dir, modules="{broken")

        outcome = store.migrate_legacy_to_consolidated(backend)

        assert outcome.status == "migrated"
        document = json.loads((backend_dir / "backend-config.json").read_text())
        assert document["modules"] == {}
        # generated names without definitions are dropped
        assert document["generatedModules"] == {"generated": []}

    def test_invalid_legacy_module_drops_only_itself(self, store, directories, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION)
        backend_dir = directories.dir_for(backend)
        modules = dict(LEGACY_MODULES, Broken={"fields": {"x": {"type": 5}}})
        _legacy_tree(backend_dir, modules=modules, generated=("Product", "Broken"))

        outcome = store.migrate_legacy_to_consolidated(backend)

        assert outcome.status == "migrated"
        document = json.loads((backend_dir / "backend-config.json").read_text())
        assert list(document["modules"]) == ["Product"]
        assert set(document["modules"]["Product"]["fields"]) == {"title", "price"}
        assert document["generatedModules"] == {"generated": ["Product"]}
        assert "class Product(" in (backend_dir / "models" / "product.py").read_text()
        # the dropped definition is still in the backup
        backup = json.loads((backend_dir / BACKUP_DIRNAME / LEGACY_MODULES_FILENAME).read_text())
        assert "Broken" in backup
        assert backend.generated_names == ["Product"]

    def test_missing_directory_is_skipped(self, store, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION)

        outcome = store.migrate_legacy_to_consolidated(backend)

        assert outcome.status == "skipped"
        assert outcome.reason == "Directory not found"
        assert backend.schema_version == LEGACY_SCHEMA_VERSION

    def test_existing_document_only_bumps_version(self, store, directories, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION)
        backend_dir = directories.create(directories.dir_for(backend))
        store.save(backend_dir, store.config_from_record(backend))

        outcome = store.migrate_legacy_to_consolidated(backend)

        assert outcome.status == "skipped"
        assert backend.schema_version == 2
        assert not (backend_dir / BACKUP_DIRNAME).exists()

    def test_failed_document_write_keeps_legacy_documents(self, store, directories, make_backend):
        backend = make_backend(schema_version=LEGACY_SCHEMA_VERSION)
        backend_dir = directories.dir_for(backend)
        _legacy_tree(backend_dir)

        with mock.patch("app.workspace.config_store.write_json_atomic", side_effect=OSError("read-only")):
            with pytest.raises(StorageError):
                store.migrate_legacy_to_consolidated(backend)

        assert (backend_dir / LEGACY_MODULES_FILENAME).exists()
        assert (backend_dir / "controllers" / "product_controller.py").exists()
        assert not (backend_dir / "backend-config.json").exists()

        # a later run merges into the same backup and succeeds
        assert store.migrate_legacy_to_consolidated(backend).status == "migrated"
        assert [p.name for p in backend_dir.iterdir() if p.name.startswith(BACKUP_DIRNAME)] == [BACKUP_DIRNAME]
