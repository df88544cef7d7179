import textwrap
from pathlib import Path

from apicontract.config import Settings
from apicontract.domain.models import HandlerRef, SchemaNode
from apicontract.errors import ErrorCollector
from apicontract.extractors.response import (
    ResponseSchemaExtractor,
    resource_name_from_uri,
    singularize,
)
from apicontract.introspection.factory import AnnotationModelFactory
from apicontract.introspection.preload import iter_transformer_modules

import sample_api


class FailingFactory:
    def make(self, model_cls):
        raise RuntimeError("no database")


def make_extractor(factory=AnnotationModelFactory(), settings=None, registry=None):
    return ResponseSchemaExtractor(
        registry or sample_api.make_registry(),
        settings or Settings(),
        factory=factory,
    )


def test_return_annotation_transformer_with_factory():
    errors = ErrorCollector()
    node = make_extractor().extract(HandlerRef.parse("PostController@show"), "/api/v1/posts/{post}", errors)

    assert len(errors) == 0
    assert list(node.children) == ["id", "title", "published_at", "tags", "summary"]
    assert node.children["id"] == SchemaNode(type="integer", required=True)
    assert node.children["published_at"].constraints == {"format": "date-time"}
    assert node.children["tags"].items == SchemaNode(type="string")


def test_transformer_found_in_handler_body():
    errors = ErrorCollector()
    node = make_extractor().extract(HandlerRef.parse("PostController@store"), "/api/v1/posts", errors)

    assert len(errors) == 0
    assert "title" in node.children


def test_collection_is_built_from_one_element_list():
    node = make_extractor().extract(HandlerRef.parse("PostController@index"), "/api/v1/posts", ErrorCollector())

    assert list(node.children) == ["data", "meta"]
    data = node.children["data"]
    assert data.type == "array"
    assert data.items.children["title"].type == "string"
    assert node.children["meta"].children["total"].type == "integer"


def test_zero_instance_when_factory_fails():
    extractor = make_extractor(factory=FailingFactory())
    node, error = extractor.schema_for(sample_api.PostResource)

    assert error is None
    # zero-valued model: empty tags, default summary
    assert node.children["tags"].items == SchemaNode(type="unknown")
    assert node.children["summary"].nullable is True


def test_static_fields_attribute():
    node, error = make_extractor().schema_for(sample_api.DraftResource)
    assert error is None
    assert node.children["id"] == SchemaNode(type="integer", required=True)
    assert node.children["state"] == SchemaNode(type="string", required=True)


def test_static_dict_keys_from_resolve():
    node, error = make_extractor().schema_for(sample_api.SummaryResource)
    assert error is None
    assert list(node.children) == ["id", "headline"]
    assert node.children["headline"].type == "unknown"


def test_bottom_of_ladder_reports_exactly_one_error():
    def ghost() -> sample_api.GhostResource:
        return None

    registry = sample_api.make_registry()
    registry.register(ghost)
    errors = ErrorCollector()
    node = make_extractor(registry=registry).extract(HandlerRef.parse("ghost"), "/api/ghosts", errors)

    assert node == SchemaNode.empty_object()
    assert errors.codes() == ["RESOURCE_MODEL_NOT_FOUND"]


def test_first_failure_is_reported():
    node, error = make_extractor().schema_for(sample_api.ExplodingResource)
    assert node == SchemaNode.empty_object()
    assert error.code == "RESOURCE_RESOLUTION_FAILED"

    node, error = make_extractor(factory=FailingFactory()).schema_for(sample_api.ExplodingResource)
    assert error.code == "RESOURCE_FACTORY_FAILED"


def test_named_but_unregistered_transformer():
    def missing() -> "MissingResource":
        return None

    registry = sample_api.make_registry()
    registry.register(missing)
    errors = ErrorCollector()
    node = make_extractor(registry=registry).extract(HandlerRef.parse("missing"), "/api/x", errors)

    assert node == SchemaNode.empty_object()
    assert errors.codes() == ["RESOURCE_CLASS_NOT_FOUND"]


def test_uri_heuristic_for_inline_handler():
    errors = ErrorCollector()
    node = make_extractor().extract(None, "/api/v1/posts/{post}", errors)
    assert "title" in node.children
    assert len(errors) == 0


def test_no_candidate_is_undocumented_without_error():
    errors = ErrorCollector()
    node = make_extractor().extract(HandlerRef.parse("list_comments"), "/api/v1/posts/{post}/comments", errors)
    assert node == SchemaNode.empty_object()
    assert len(errors) == 0


def test_schemas_are_memoized_per_transformer():
    calls = []

    class CountingFactory(AnnotationModelFactory):
        def make(self, model_cls):
            calls.append(model_cls)
            return super().make(model_cls)

    extractor = make_extractor(factory=CountingFactory())
    first = extractor.schema_for(sample_api.PostResource)
    second = extractor.schema_for(sample_api.PostResource)
    assert first is second
    assert calls == [sample_api.Post]


def test_model_map_overrides_naming_convention():
    settings = Settings(model_map={"SummaryResource": "Post"})
    extractor = make_extractor(settings=settings)
    assert extractor.model_name_for(sample_api.SummaryResource) == "Post"
    assert extractor.model_name_for(sample_api.PostCollection) == "Post"

    node, error = extractor.schema_for(sample_api.SummaryResource)
    assert error is None
    assert node.children["headline"].type == "string"


def test_preload_registers_transformers_lazily(tmp_path: Path):
    pkg = tmp_path / "resources"
    pkg.mkdir()
    (pkg / "comment.py").write_text(
        textwrap.dedent(
            """
            class CommentResource:
                fields = ["id", "body"]

                def __init__(self, resource):
                    self.resource = resource

                def resolve(self):
                    return {}
            """
        ),
        encoding="utf-8",
    )
    (pkg / "__pycache__").mkdir()
    (pkg / "__pycache__" / "junk.py").write_text("class JunkResource: pass\n", encoding="utf-8")

    registry = sample_api.make_registry()
    extractor = ResponseSchemaExtractor(registry, Settings(transformers_path=pkg), factory=None)

    assert extractor.preloader.names() == ["CommentResource"]
    assert "CommentResource" not in registry.names()

    node = extractor.extract(None, "/api/v1/posts/{post}/comments", ErrorCollector())
    assert list(node.children) == ["id", "body"]
    assert "CommentResource" in registry.names()


def test_preload_skips_hidden_test_and_cache_dirs(tmp_path: Path):
    for rel in ("app/post.py", "app/.cache/x.py", "app/tests/y.py", "app/test_post.py", "app/notes.txt", "app/api/v1/tag.py"):
        p = tmp_path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text("", encoding="utf-8")

    found = [p.relative_to(tmp_path).as_posix() for p in iter_transformer_modules(tmp_path)]
    assert found == ["app/post.py", "app/api/v1/tag.py"]


def test_uri_naming_helpers():
    assert singularize("posts") == "post"
    assert singularize("categories") == "category"
    assert singularize("boxes") == "box"
    assert singularize("status") == "status"
    assert resource_name_from_uri("/api/v1/blog-posts/{post}") == "BlogPost"
    assert resource_name_from_uri("/api/{id}") == "Api"
    assert resource_name_from_uri("/") is None
