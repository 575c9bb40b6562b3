"""Tests for model, controller and route rendering of a single module."""
import ast
import pytest
from app.generators.backend_gen.render_module import enabled_handlers, render_module
from app.schemas.config import ApiFlags, ModuleDefinition


def _definition(fields, apis=None):
    return ModuleDefinition.model_validate({"fields": fields, "apis": apis or {}})


def _class(source, name):
    tree = ast.parse(source)
    return next(node for node in tree.body if isinstance(node, ast.ClassDef) and node.name == name)


def _annotated_names(class_node):
    return [stmt.target.id for stmt in class_node.body if isinstance(stmt, ast.AnnAssign)]


def _function_names(source):
    return {node.name for node in ast.parse(source).body if isinstance(node, ast.FunctionDef)}


def _routes(source):
    """(method, path, handler) for every router.add_api_route call."""
    routes = []
    for node in ast.walk(ast.parse(source)):
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute) and node.func.attr == "add_api_route":
            methods = next(kw.value for kw in node.keywords if kw.arg == "methods")
            routes.append((methods.elts[0].value, node.args[0].value, node.args[1].id))
    return routes


PRODUCT_FIELDS = {"title": {"type": "String"}, "price": {"type": "Number"}}
READ_AND_CREATE = {"post": True, "get": True, "getById": True, "put": False, "delete": False}


def test_product_with_update_and_delete_disabled():
    """Only create, list and get-by-id are rendered and routed."""
    rendered = render_module("Product", _definition(PRODUCT_FIELDS, READ_AND_CREATE))

    assert _annotated_names(_class(rendered.model_source, "Product")) == ["title", "price"]
    assert _function_names(rendered.controller_source) == {"get_all_products", "get_product_by_id", "create_product"}
    assert _routes(rendered.route_source) == [
        ("GET", "", "get_all_products"),
        ("GET", "/{id}", "get_product_by_id"),
        ("POST", "", "create_product"),
    ]
    assert "ProductUpdate" not in rendered.controller_source
    assert "update_product" not in rendered.route_source
    assert "delete_product" not in rendered.route_source


def test_all_apis_enabled_by_default():
    rendered = render_module("Product", _definition(PRODUCT_FIELDS))

    assert _function_names(rendered.controller_source) == {
        "get_all_products",
        "get_product_by_id",
        "create_product",
        "update_product",
        "delete_product",
    }
    assert {method for method, _, _ in _routes(rendered.route_source)} == {"GET", "POST", "PUT", "DELETE"}


@pytest.mark.parametrize("flag,handler", [
    ("get", "get_all_orders"),
    ("getById", "get_order_by_id"),
    ("post", "create_order"),
    ("put", "update_order"),
    ("delete", "delete_order"),
])
def test_single_enabled_api(flag, handler):
    apis = {key: key == flag for key in ("post", "get", "getById", "put", "delete")}
    rendered = render_module("Order", _definition({"total": {"type": "Number"}}, apis))

    assert _function_names(rendered.controller_source) == {handler}
    assert [h for _, _, h in _routes(rendered.route_source)] == [handler]


def test_create_and_update_schemas():
    """Create requires non-optional fields; Update makes every field optional."""
    fields = {
        "name": {"type": "String"},
        "nickname": {"type": "String", "optional": True},
        "age": {"type": "Number"},
        "active": {"type": "Boolean", "optional": True},
        "born": {"type": "Date"},
    }
    source = render_module("Person", _definition(fields)).controller_source

    create = ast.get_source_segment(source, _class(source, "PersonCreate"))
    assert "name: str\n" in create
    assert "nickname: Optional[str] = None" in create
    assert "age: float\n" in create
    assert "active: Optional[bool] = None" in create
    assert "born: str" in create

    update = _class(source, "PersonUpdate")
    assert _annotated_names(update) == list(fields)
    assert all(isinstance(stmt.value, ast.Constant) and stmt.value.value is None
               for stmt in update.body if isinstance(stmt, ast.AnnAssign))


def test_model_columns_follow_field_types():
    fields = {"title": {"type": "String"}, "price": {"type": "Number"}, "tags": {"type": "Array"}, "on_sale": {"type": "Boolean"}}
    model = render_module("Product", _definition(fields)).model_source

    assert "from sqlalchemy import Boolean, Float, Text" in model
    assert "title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)" in model
    assert "price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)" in model
    assert "tags: Mapped[Optional[str]] = mapped_column(Text, nullable=True)" in model
    assert "on_sale: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)" in model
    assert '__tablename__ = "products"' in model


def test_unique_is_declared_but_only_enforced_when_asked():
    definition = _definition({"sku": {"type": "String", "unique": True}})

    relaxed = render_module("Product", definition).model_source
    assert "unique=True" not in relaxed
    assert "declared unique, not enforced" in relaxed

    strict = render_module("Product", definition, enforce_unique=True).model_source
    assert "mapped_column(Text, nullable=True, unique=True)" in strict


def test_rendering_is_deterministic():
    definition = _definition(PRODUCT_FIELDS, READ_AND_CREATE)
    assert render_module("Product", definition) == render_module("Product", definition)


def test_handlers_return_documented_statuses():
    source = render_module("Product", _definition(PRODUCT_FIELDS)).controller_source

    assert 'send_error(status=404, message="Product not found")' in source
    assert "send_error(status=400, message=str(exc))" in source
    assert "send_success(status=201" in source
    assert "return send_error(message=str(exc))" in source


def test_enabled_handlers_table_order():
    handlers = enabled_handlers("Product", ApiFlags())
    assert [(method, path) for _, _, method, path in handlers] == [
        ("GET", ""), ("GET", "/{id}"), ("POST", ""), ("PUT", "/{id}"), ("DELETE", "/{id}"),
    ]
