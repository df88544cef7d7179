from __future__ import annotations

import inspect
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Optional

from apicontract.config import Settings
from apicontract.domain.models import HandlerRef, SchemaNode
from apicontract.errors import AnalysisError, ErrorCallback, ResourceAnalysisError
from apicontract.extractors.shape import annotation_to_schema, value_to_schema
from apicontract.extractors.source import returned_dict_keys, transformer_references
from apicontract.introspection.factory import InstanceSynthesizer, zero_instance
from apicontract.introspection.handlers import HandlerInfo, HandlerResolver, annotation_name
from apicontract.introspection.preload import TransformerPreloader
from apicontract.introspection.registry import ClassRegistry
from apicontract.logging import EXTRACT, get_logger

logger = get_logger(__name__)

_MODEL_SUFFIXES = ("Resource", "Overview", "Collection")
_PLACEHOLDER = re.compile(r"^\{.*\}$")
_WORD_SPLIT = re.compile(r"[-_\s]+")

# (schema, first ladder failure); the failure is only set when nothing worked
_Outcome = tuple[SchemaNode, Optional[ResourceAnalysisError]]


def is_transformer(obj: Any) -> bool:
    return inspect.isclass(obj) and callable(getattr(obj, "resolve", None))


def is_collection(cls: type) -> bool:
    return cls.__name__.endswith("Collection") or hasattr(cls, "collects")


def singularize(word: str) -> str:
    lowered = word.lower()
    if lowered.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if lowered.endswith(("sses", "xes", "ches", "shes")):
        return word[:-2]
    if lowered.endswith("s") and not lowered.endswith(("ss", "us")) and len(word) > 1:
        return word[:-1]
    return word


def resource_name_from_uri(uri: str) -> Optional[str]:
    """
    '/api/v1/blog-posts/{post}' -> 'BlogPost'.

    Uses the last non-placeholder segment, singularized and camel-cased.
    """
    segments = [s for s in uri.strip("/").split("/") if s and not _PLACEHOLDER.match(s)]
    if not segments:
        return None
    words = [w for w in _WORD_SPLIT.split(segments[-1]) if w]
    if not words:
        return None
    words[-1] = singularize(words[-1])
    return "".join(w[:1].upper() + w[1:] for w in words)


class ResponseSchemaExtractor:
    """
    Describes what a handler returns by finding its output transformer and
    running it against a synthesized model instance.

    Degradation ladder per transformer (first success wins):
      1. factory-synthesized model -> transformer.resolve()
      2. zero-valued model -> transformer.resolve()
      3. static reflection of the transformer's declared fields
      4. empty object + one RESOURCE_* error (the first failure seen)
    """

    def __init__(
        self,
        registry: ClassRegistry,
        settings: Settings,
        factory: Optional[InstanceSynthesizer] = None,
        resolver: Optional[HandlerResolver] = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.factory = factory
        self.resolver = resolver or HandlerResolver(registry)
        self.suffixes = tuple(settings.transformer_suffixes)

        self.preloader = TransformerPreloader(self.suffixes)
        self.preloader.attach(registry)
        if settings.transformers_path is not None:
            self.preload(settings.transformers_path)

        self._memo: dict[type, _Outcome] = {}

    def preload(self, directory: Path) -> list[str]:
        return self.preloader.scan(Path(directory))

    # ----------------------------
    # Entry point
    # ----------------------------

    def extract(
        self,
        ref: Optional[HandlerRef],
        uri: str,
        on_error: ErrorCallback,
        info: Optional[HandlerInfo] = None,
    ) -> SchemaNode:
        if info is None and ref is not None:
            try:
                info = self.resolver.resolve(ref)
            except AnalysisError as e:
                e.report(on_error)
                return SchemaNode.empty_object()

        if info is not None:
            try:
                transformer = self._explicit_transformer(info)
            except ResourceAnalysisError as e:
                e.report(on_error)
                return SchemaNode.empty_object()

            if transformer is not None:
                node, error = self.schema_for(transformer)
                if error is not None:
                    error.report(on_error)
                return node

        return self._heuristic(uri)

    # ----------------------------
    # Transformer discovery
    # ----------------------------

    def _lookup(self, name: str) -> Optional[type]:
        obj = self.registry.get(name)
        return obj if is_transformer(obj) else None

    def _explicit_transformer(self, info: HandlerInfo) -> Optional[type]:
        """
        Transformer named by the return annotation or referenced in the handler body.

        Raises RESOURCE_CLASS_NOT_FOUND when a transformer is named but unknown.
        """
        ret = info.return_annotation
        if is_transformer(ret):
            return ret

        missing: Optional[str] = None
        name = annotation_name(ret)
        if name:
            found = self._lookup(name)
            if found is not None:
                return found
            if name.endswith(self.suffixes):
                missing = name

        for ref_name in transformer_references(info.func, self.suffixes):
            found = self._lookup(ref_name)
            if found is not None:
                return found
            missing = missing or ref_name

        if missing is not None:
            raise ResourceAnalysisError.class_not_found(missing)
        return None

    def heuristic_candidates(self, uri: str) -> list[str]:
        base = resource_name_from_uri(uri)
        if base is None:
            return []

        candidates = [f"{base}Resource", f"{base}OverviewResource", f"{base}Collection"]
        for name in self.preloader.names():
            if base in name and name.endswith(self.suffixes) and name not in candidates:
                candidates.append(name)
        return candidates

    def _heuristic(self, uri: str) -> SchemaNode:
        for name in self.heuristic_candidates(uri):
            transformer = self._lookup(name)
            if transformer is None:
                continue
            node, error = self.schema_for(transformer)
            if error is None:
                logger.debug(f"{EXTRACT} {uri}: matched {name} by naming convention")
                return node

        # undocumented route
        return SchemaNode.empty_object()

    # ----------------------------
    # Ladder
    # ----------------------------

    def model_name_for(self, transformer: type) -> str:
        name = transformer.__name__
        if name in self.settings.model_map:
            return self.settings.model_map[name]

        collects = getattr(transformer, "collects", None)
        if inspect.isclass(collects):
            name = collects.__name__
        elif isinstance(collects, str) and collects:
            name = collects.split(".")[-1]

        for suffix in _MODEL_SUFFIXES:
            name = name.replace(suffix, "")
        return name

    def schema_for(self, transformer: type) -> _Outcome:
        """Memoized per transformer class for the extractor's lifetime."""
        if transformer not in self._memo:
            self._memo[transformer] = self._run_ladder(transformer)
        return self._memo[transformer]

    def _run_ladder(self, transformer: type) -> _Outcome:
        name = transformer.__name__
        first_error: Optional[ResourceAnalysisError] = None

        model_name = self.model_name_for(transformer)
        model_cls = self.registry.get(model_name) if model_name else None
        if not inspect.isclass(model_cls):
            model_cls = None
            first_error = ResourceAnalysisError.model_not_found(model_name, name)

        if model_cls is not None and self.factory is not None:
            try:
                instance = self.factory.make(model_cls)
            except Exception as e:
                first_error = ResourceAnalysisError.factory_failed(name, model_name, str(e))
            else:
                node, error = self._transform(transformer, instance)
                if node is not None:
                    return node, None
                first_error = error

        if model_cls is not None:
            try:
                instance = zero_instance(model_cls)
            except Exception as e:
                first_error = first_error or ResourceAnalysisError.factory_failed(name, model_name, str(e))
            else:
                node, error = self._transform(transformer, instance)
                if node is not None:
                    return node, None
                first_error = first_error or error

        node = self._static_schema(transformer)
        if node is not None:
            return node, None

        logger.debug(f"{EXTRACT} {name}: no usable response shape")
        return SchemaNode.empty_object(), first_error or ResourceAnalysisError.resolution_failed(
            name, "no declared fields"
        )

    def _transform(self, transformer: type, instance: Any) -> tuple[Optional[SchemaNode], Optional[ResourceAnalysisError]]:
        name = transformer.__name__
        payload = [instance] if is_collection(transformer) else instance

        try:
            wrapped = transformer(payload)
        except Exception as e:
            return None, ResourceAnalysisError.instantiation_failed(name, str(e))

        try:
            data = wrapped.resolve()
        except Exception as e:
            return None, ResourceAnalysisError.resolution_failed(name, str(e))

        return value_to_schema(data), None

    def _static_schema(self, transformer: type) -> Optional[SchemaNode]:
        """Declared fields only; no transformer code runs."""
        declared = getattr(transformer, "fields", None)
        children: dict[str, SchemaNode] = {}

        if isinstance(declared, Mapping):
            for key, annotation in declared.items():
                children[str(key)] = annotation_to_schema(annotation, required=True)
        elif isinstance(declared, Sequence) and not isinstance(declared, str):
            for key in declared:
                children[str(key)] = SchemaNode(type="unknown", required=True)

        if not children:
            annotations = {
                k: v
                for k, v in vars(transformer).get("__annotations__", {}).items()
                if not k.startswith("_") and k not in ("fields", "collects")
            }
            for key, annotation in annotations.items():
                children[key] = annotation_to_schema(annotation, required=True)

        if not children:
            for key in returned_dict_keys(transformer):
                children[key] = SchemaNode(type="unknown", required=True)

        if not children:
            return None
        return SchemaNode(type="object", children=children)
