from typing import Optional

from apicontract.config import Settings
from apicontract.domain.models import HandlerRef, SchemaNode
from apicontract.errors import ErrorCollector
from apicontract.extractors.request import RequestSchemaExtractor
from apicontract.introspection.registry import ClassRegistry

import sample_api


def make_extractor(*objects) -> RequestSchemaExtractor:
    registry = sample_api.make_registry()
    for obj in objects:
        registry.register(obj)
    return RequestSchemaExtractor(registry, Settings())


def test_validator_backed_schema():
    errors = ErrorCollector()
    node = make_extractor().extract(HandlerRef.parse("PostController@store"), errors)

    assert len(errors) == 0
    assert list(node.children) == ["title", "body", "tags", "author"]
    assert node.children["title"].constraints == {"max": "255"}
    assert node.children["tags"].items.type == "string"
    assert node.children["author"].children["email"].constraints == {"format": "email"}


def test_signature_fallback_for_function_handler():
    errors = ErrorCollector()
    node = make_extractor().extract(HandlerRef.parse("list_comments"), errors, is_query=True)

    assert len(errors) == 0
    assert node.children["post"] == SchemaNode(type="integer", required=True)
    assert node.children["page"] == SchemaNode(type="integer", required=False)
    assert node.children["per_page"].nullable is True
    assert node.children["per_page"].required is False


def test_signature_fallback_skips_self_and_varargs():
    class SearchController:
        def search(self, q: str, *args, limit: int = 10, **kwargs):
            return []

    node = make_extractor(SearchController).extract(HandlerRef.parse("SearchController@search"), ErrorCollector())
    assert list(node.children) == ["q", "limit"]


def test_inline_handler_has_empty_request():
    errors = ErrorCollector()
    assert make_extractor().extract(None, errors) == SchemaNode.empty_object()
    assert len(errors) == 0


def test_missing_controller_degrades_gracefully():
    errors = ErrorCollector()
    node = make_extractor().extract(HandlerRef.parse("MissingController@show"), errors)

    assert node == SchemaNode.empty_object()
    assert errors.codes() == ["ROUTE_CONTROLLER_NOT_FOUND"]


def test_missing_method_degrades_gracefully():
    errors = ErrorCollector()
    node = make_extractor().extract(HandlerRef.parse("PostController@archive"), errors)

    assert node == SchemaNode.empty_object()
    assert errors.codes() == ["ROUTE_METHOD_NOT_FOUND"]


def test_unregistered_validator_annotation():
    def publish(request: "GhostRequest"):
        return None

    errors = ErrorCollector()
    node = make_extractor(publish).extract(HandlerRef.parse("publish"), errors)

    assert node == SchemaNode.empty_object()
    assert errors.codes() == ["FORM_REQUEST_CLASS_NOT_FOUND"]


def test_framework_request_annotation_falls_back_to_signature():
    class HttpRequest:
        pass

    def search(request: "Request", limit: "Missing" = 10, q: str = ""):
        return None

    def export(request: HttpRequest, fmt: str = "csv"):
        return None

    extractor = make_extractor(search, export, HttpRequest)

    errors = ErrorCollector()
    node = extractor.extract(HandlerRef.parse("search"), errors)
    assert len(errors) == 0
    assert list(node.children) == ["request", "limit", "q"]
    assert node.children["limit"].required is False
    assert node.children["q"].type == "string"

    errors = ErrorCollector()
    node = extractor.extract(HandlerRef.parse("export"), errors)
    assert len(errors) == 0
    assert list(node.children) == ["request", "fmt"]


def test_validator_constructor_failure():
    class NeedsArgsRequest:
        def __init__(self, user):
            self.user = user

        def rules(self):
            return {"a": "string"}

    def update(request: NeedsArgsRequest):
        return None

    errors = ErrorCollector()
    node = make_extractor(update).extract(HandlerRef.parse("update"), errors)

    assert node == SchemaNode.empty_object()
    assert errors.codes() == ["FORM_REQUEST_INSTANTIATION_FAILED"]


def test_rules_that_raise_or_return_non_mapping():
    class RaisingRequest:
        def rules(self):
            raise KeyError("config")

    class ListRequest:
        def rules(self):
            return ["required"]

    def a(request: RaisingRequest):
        return None

    def b(request: ListRequest):
        return None

    extractor = make_extractor(a, b)
    for name in ("a", "b"):
        errors = ErrorCollector()
        assert extractor.extract(HandlerRef.parse(name), errors) == SchemaNode.empty_object()
        assert errors.codes() == ["FORM_REQUEST_INVALID_RULES"]


def test_non_callable_rules_attribute():
    class StaticRequest:
        rules = {"a": "string"}

    def c(request: StaticRequest):
        return None

    errors = ErrorCollector()
    make_extractor(c).extract(HandlerRef.parse("c"), errors)
    assert errors.codes() == ["FORM_REQUEST_RULES_NOT_FOUND"]


def test_validator_resolved_from_string_annotation():
    def show(request: "ShowPostRequest", post: Optional[int] = None):
        return None

    node = make_extractor(show).extract(HandlerRef.parse("show"), ErrorCollector())
    assert node.children["post"] == SchemaNode(type="integer", required=True)


def test_resolution_is_memoized_per_ref():
    registry = ClassRegistry([sample_api.PostController, sample_api.ShowPostRequest])
    extractor = RequestSchemaExtractor(registry)
    ref = HandlerRef.parse("PostController@show")

    first = extractor.resolver.resolve(ref)
    assert extractor.resolver.resolve(ref) is first
