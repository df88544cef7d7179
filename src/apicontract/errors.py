from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from apicontract.logging import EXTRACT, get_logger

logger = get_logger(__name__)

# (error_code, message) -> None
ErrorCallback = Callable[[str, str], None]


class ApiContractError(Exception):
    """Base class for every error raised by apicontract."""


class ConfigError(ApiContractError):
    """Configuration could not be loaded or validated."""


class ContractStorageError(ApiContractError):
    """Writing the contract or a version snapshot failed."""


class VersionNotFoundError(ApiContractError):
    """The requested contract version does not exist."""


class ContractLoadError(ApiContractError):
    """A contract file is missing or not a valid contract."""


# ----------------------------
# Analysis errors (reported per route, never fatal)
# ----------------------------


class AnalysisError(ApiContractError):
    """
    Structured analysis failure.

    Carries a machine-readable code, a human message, a context mapping and a
    remediation suggestion. These are caught at the route boundary and turned
    into error-callback invocations.
    """

    suggestions: dict[str, str] = {}
    default_suggestion = "Review the handler configuration and the class registry."

    def __init__(
        self,
        message: str,
        code: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = dict(context or {})

    @property
    def suggestion(self) -> str:
        return self.suggestions.get(self.code, self.default_suggestion)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "error_code": self.code,
            "message": self.message,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def report(self, on_error: ErrorCallback) -> None:
        on_error(self.code, self.message)


class RouteAnalysisError(AnalysisError):
    suggestions = {
        "ROUTE_INVALID_ACTION": (
            "Use 'Controller@method' for class handlers or a plain function name "
            "for function handlers."
        ),
        "ROUTE_CONTROLLER_NOT_FOUND": (
            "Register the handler class or function in the ClassRegistry passed to "
            "the contract store."
        ),
        "ROUTE_METHOD_NOT_FOUND": (
            "Check that the method exists on the handler class and that the name "
            "matches exactly (names are case-sensitive)."
        ),
        "ROUTE_REFLECTION_FAILED": (
            "The handler signature could not be inspected. Builtins and C "
            "extensions cannot be introspected; wrap them in a Python function."
        ),
    }

    @classmethod
    def invalid_action(cls, action: str) -> "RouteAnalysisError":
        return cls(
            f"Invalid route action format: '{action}'. Expected 'Controller@method' or 'function'.",
            "ROUTE_INVALID_ACTION",
            {"action": action},
        )

    @classmethod
    def controller_not_found(cls, controller: str) -> "RouteAnalysisError":
        return cls(
            f"Handler not found in registry: '{controller}'.",
            "ROUTE_CONTROLLER_NOT_FOUND",
            {"controller": controller},
        )

    @classmethod
    def method_not_found(cls, controller: str, method: str) -> "RouteAnalysisError":
        return cls(
            f"Method '{method}' not found on handler '{controller}'.",
            "ROUTE_METHOD_NOT_FOUND",
            {"controller": controller, "method": method},
        )

    @classmethod
    def reflection_failed(cls, target: str, reason: str) -> "RouteAnalysisError":
        return cls(
            f"Failed to reflect handler '{target}': {reason}",
            "ROUTE_REFLECTION_FAILED",
            {"target": target, "reason": reason},
        )


class FormRequestAnalysisError(AnalysisError):
    suggestions = {
        "FORM_REQUEST_CLASS_NOT_FOUND": (
            "Register the validator class, or import it so the annotation resolves "
            "to the class itself."
        ),
        "FORM_REQUEST_INSTANTIATION_FAILED": (
            "Validators are instantiated without arguments. Make constructor "
            "parameters optional."
        ),
        "FORM_REQUEST_RULES_NOT_FOUND": "Give the validator a callable rules() method.",
        "FORM_REQUEST_INVALID_RULES": (
            "rules() must return a mapping of field name to a rule string or a list "
            "of rule tokens."
        ),
    }

    @classmethod
    def class_not_found(cls, validator: str) -> "FormRequestAnalysisError":
        return cls(
            f"Validator class not found: '{validator}'.",
            "FORM_REQUEST_CLASS_NOT_FOUND",
            {"validator_class": validator},
        )

    @classmethod
    def instantiation_failed(cls, validator: str, reason: str) -> "FormRequestAnalysisError":
        return cls(
            f"Could not instantiate validator '{validator}': {reason}",
            "FORM_REQUEST_INSTANTIATION_FAILED",
            {"validator_class": validator, "reason": reason},
        )

    @classmethod
    def rules_not_found(cls, validator: str) -> "FormRequestAnalysisError":
        return cls(
            f"Validator '{validator}' has no callable rules() method.",
            "FORM_REQUEST_RULES_NOT_FOUND",
            {"validator_class": validator},
        )

    @classmethod
    def invalid_rules(cls, validator: str, reason: str) -> "FormRequestAnalysisError":
        return cls(
            f"Validator '{validator}' returned invalid rules: {reason}",
            "FORM_REQUEST_INVALID_RULES",
            {"validator_class": validator, "reason": reason},
        )


class ResourceAnalysisError(AnalysisError):
    suggestions = {
        "RESOURCE_CLASS_NOT_FOUND": "Register the transformer class or add it to the preload directory.",
        "RESOURCE_MODEL_NOT_FOUND": (
            "Register the model class. The transformer name maps to a model by "
            "dropping Resource/Overview/Collection (PostResource -> Post), or set "
            "model_map explicitly."
        ),
        "RESOURCE_FACTORY_FAILED": (
            "Check the model factory. Every required field needs a value the "
            "factory can synthesize."
        ),
        "RESOURCE_INSTANTIATION_FAILED": "The transformer constructor must accept a single model instance.",
        "RESOURCE_RESOLUTION_FAILED": (
            "resolve() raised on a synthesized instance. Check for accessors that "
            "need database state."
        ),
    }

    @classmethod
    def class_not_found(cls, transformer: str) -> "ResourceAnalysisError":
        return cls(
            f"Transformer class not found: '{transformer}'.",
            "RESOURCE_CLASS_NOT_FOUND",
            {"resource_class": transformer},
        )

    @classmethod
    def model_not_found(cls, model: str, transformer: str) -> "ResourceAnalysisError":
        return cls(
            f"Model class '{model}' not found for transformer '{transformer}'.",
            "RESOURCE_MODEL_NOT_FOUND",
            {"model_class": model, "resource_class": transformer},
        )

    @classmethod
    def factory_failed(cls, transformer: str, model: str, reason: str) -> "ResourceAnalysisError":
        return cls(
            f"Factory failed for transformer '{transformer}' with model '{model}': {reason}",
            "RESOURCE_FACTORY_FAILED",
            {"resource_class": transformer, "model_class": model, "reason": reason},
        )

    @classmethod
    def instantiation_failed(cls, transformer: str, reason: str) -> "ResourceAnalysisError":
        return cls(
            f"Failed to instantiate transformer '{transformer}': {reason}",
            "RESOURCE_INSTANTIATION_FAILED",
            {"resource_class": transformer, "reason": reason},
        )

    @classmethod
    def resolution_failed(cls, transformer: str, reason: str) -> "ResourceAnalysisError":
        return cls(
            f"Failed to resolve transformer '{transformer}': {reason}",
            "RESOURCE_RESOLUTION_FAILED",
            {"resource_class": transformer, "reason": reason},
        )


# ----------------------------
# Error collection
# ----------------------------


@dataclass(frozen=True)
class ErrorRecord:
    code: str
    message: str
    route: str = ""


@dataclass
class ErrorCollector:
    """
    Error callback that records what it receives.

    `route` is updated by the caller while iterating so each record knows which
    route produced it.
    """

    records: list[ErrorRecord] = field(default_factory=list)
    route: str = ""

    def __call__(self, code: str, message: str) -> None:
        self.records.append(ErrorRecord(code=code, message=message, route=self.route))
        logger.warning(f"{EXTRACT} {self.route or '-'}: {code} {message}")

    def __len__(self) -> int:
        return len(self.records)

    def codes(self) -> list[str]:
        return [r.code for r in self.records]


def log_error(code: str, message: str) -> None:
    """Default callback when the caller supplies none."""
    logger.warning(f"{EXTRACT} {code} {message}")
