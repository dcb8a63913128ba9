from typing import Protocol

from openapi_gateway.models.document import ApiDocument, Operation, operations


class SwaggerTransformFactory(Protocol):
    def build(self, operation: Operation, directive: dict[str, str]) -> bool:
        """Annotate ``operation`` for ``directive``; return False if not recognised."""


def _header_value(directive: dict[str, str]) -> tuple[str, str] | None:
    for mode in ("Set", "Append"):
        if mode in directive:
            return mode, directive[mode]
    return None


class RequestHeaderTransformFactory:
    """Documents headers that the gateway adds to forwarded requests."""

    def build(self, operation: Operation, directive: dict[str, str]) -> bool:
        name = directive.get("RequestHeader")
        header_value = _header_value(directive)
        if not name or header_value is None:
            return False

        mode, value = header_value
        parameters = operation.setdefault("parameters", [])
        for parameter in parameters:
            if (
                isinstance(parameter, dict)
                and parameter.get("in") == "header"
                and str(parameter.get("name", "")).lower() == name.lower()
            ):
                return True
        parameters.append(
            {
                "name": name,
                "in": "header",
                "required": False,
                "description": f"{mode} by the gateway to '{value}'.",
                "schema": {"type": "string", "default": value},
            }
        )
        return True


class ResponseHeaderTransformFactory:
    def build(self, operation: Operation, directive: dict[str, str]) -> bool:
        name = directive.get("ResponseHeader")
        header_value = _header_value(directive)
        if not name or header_value is None:
            return False

        mode, value = header_value
        responses = operation.get("responses")
        if not isinstance(responses, dict):
            return True
        for response in responses.values():
            if not isinstance(response, dict) or "$ref" in response:
                continue
            headers = response.setdefault("headers", {})
            headers.setdefault(
                name,
                {
                    "description": f"{mode} by the gateway to '{value}'.",
                    "schema": {"type": "string"},
                },
            )
        return True


def default_transform_factories() -> list[SwaggerTransformFactory]:
    return [RequestHeaderTransformFactory(), ResponseHeaderTransformFactory()]


class TransformApplier:
    def __init__(self, factories: list[SwaggerTransformFactory] | None = None):
        if factories is None:
            factories = default_transform_factories()
        self._factories = list(factories)

    def apply(self, document: ApiDocument, directives: list[dict[str, str]]) -> ApiDocument:
        if not self._factories or not directives:
            return document
        for path_item in document.paths.values():
            for operation in operations(path_item).values():
                self.apply_operation(operation, directives)
        return document

    def apply_operation(self, operation: Operation, directives: list[dict[str, str]]) -> Operation:
        for factory in self._factories:
            for directive in directives:
                factory.build(operation, directive)
        return operation
