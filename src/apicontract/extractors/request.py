from __future__ import annotations

from typing import Optional, Sequence

from apicontract.config import Settings
from apicontract.domain.models import HandlerRef, SchemaNode
from apicontract.errors import AnalysisError, ErrorCallback
from apicontract.introspection.handlers import (
    HandlerInfo,
    HandlerIntrospector,
    HandlerResolver,
    SignatureIntrospector,
    ValidatorIntrospector,
)
from apicontract.introspection.registry import ClassRegistry
from apicontract.logging import EXTRACT, get_logger

logger = get_logger(__name__)


class RequestSchemaExtractor:
    """
    Describes what a handler accepts.

    Introspectors are tried in order; the first that supports the handler
    produces the schema. Always returns an object node.
    """

    def __init__(
        self,
        registry: ClassRegistry,
        settings: Optional[Settings] = None,
        resolver: Optional[HandlerResolver] = None,
        introspectors: Optional[Sequence[HandlerIntrospector]] = None,
    ) -> None:
        settings = settings or Settings()
        self.registry = registry
        self.resolver = resolver or HandlerResolver(registry)
        self.introspectors: list[HandlerIntrospector] = list(
            introspectors
            if introspectors is not None
            else (
                ValidatorIntrospector(registry, settings.validator_suffix),
                SignatureIntrospector(registry),
            )
        )

    def extract(
        self,
        ref: Optional[HandlerRef],
        on_error: ErrorCallback,
        is_query: bool = False,
        info: Optional[HandlerInfo] = None,
    ) -> SchemaNode:
        """
        On any resolution or validator failure, reports exactly one error and
        returns an empty object node.
        """
        if ref is None and info is None:
            return SchemaNode.empty_object()

        try:
            if info is None:
                info = self.resolver.resolve(ref)

            for introspector in self.introspectors:
                if introspector.supports(info):
                    node = introspector.request_schema(info)
                    logger.debug(
                        f"{EXTRACT} {info.ref.label}: request schema via {introspector.kind or type(introspector).__name__}"
                        + (" (query)" if is_query else "")
                    )
                    return node
        except AnalysisError as e:
            e.report(on_error)

        return SchemaNode.empty_object()
