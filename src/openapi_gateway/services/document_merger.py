import re
from typing import Any

from openapi_gateway.models.document import ApiDocument, PathItem, operations
from openapi_gateway.services.path_filter import join_path

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
_SECURITY_SCHEME_REF = "#/components/securitySchemes/"


def rewrite_refs(value: Any, renames: dict[str, str]) -> Any:
    if not renames:
        return value
    if isinstance(value, dict):
        rewritten = {}
        for key, item in value.items():
            if key == "$ref" and isinstance(item, str) and item in renames:
                rewritten[key] = renames[item]
            else:
                rewritten[key] = rewrite_refs(item, renames)
        return rewritten
    if isinstance(value, list):
        return [rewrite_refs(item, renames) for item in value]
    return value


def rename_security_requirements(
    requirements: list[Any], schemes: dict[str, str]
) -> list[Any]:
    if not schemes:
        return requirements
    return [
        {schemes.get(name, name): scopes for name, scopes in requirement.items()}
        if isinstance(requirement, dict)
        else requirement
        for requirement in requirements
    ]


def _rename_operation_security(path_item: PathItem, schemes: dict[str, str]) -> PathItem:
    renamed = dict(path_item)
    for method, operation in operations(path_item).items():
        requirements = operation.get("security")
        if isinstance(requirements, list):
            renamed[method] = {
                **operation,
                "security": rename_security_requirements(requirements, schemes),
            }
    return renamed


class DocumentMerger:
    """Folds pruned upstream documents into one merged document.

    Path keys are first-write-wins. Component names are last-write-wins
    unless ``rename_duplicates`` is set, in which case a colliding
    definition is stored under a suffixed name and the contributing
    document's ``$ref``s are rewritten to match. Renamed security schemes
    are also renamed in the document- and operation-level requirements,
    which refer to schemes by bare name.
    """

    def __init__(self, rename_duplicates: bool = False):
        self._rename_duplicates = rename_duplicates

    def merge(
        self,
        accumulator: ApiDocument,
        document: ApiDocument,
        prefix: str = "",
        *,
        source_suffix: str = "",
        use_metadata: bool = False,
    ) -> ApiDocument:
        renames = self._plan_renames(accumulator, document, source_suffix)
        paths = rewrite_refs(document.paths, renames)
        components = rewrite_refs(document.components, renames)
        schemes = {
            ref[len(_SECURITY_SCHEME_REF) :]: target[len(_SECURITY_SCHEME_REF) :]
            for ref, target in renames.items()
            if ref.startswith(_SECURITY_SCHEME_REF)
        }
        if schemes:
            paths = {
                key: _rename_operation_security(path_item, schemes)
                for key, path_item in paths.items()
            }

        merged_paths = dict(accumulator.paths)
        for key, path_item in paths.items():
            merged_paths.setdefault(join_path(prefix, key), path_item)

        merged_components = {
            category: dict(entries) for category, entries in accumulator.components.items()
        }
        for category, entries in components.items():
            target = merged_components.setdefault(category, {})
            for name, definition in entries.items():
                ref = self._ref(category, name)
                if ref in renames:
                    name = renames[ref].rsplit("/", 1)[-1]
                target[name] = definition

        merged_tags = list(accumulator.tags)
        for tag in document.tags:
            if tag not in merged_tags:
                merged_tags.append(tag)

        return accumulator.model_copy(
            update={
                "info": document.info if use_metadata else accumulator.info,
                "paths": merged_paths,
                "components": merged_components,
                "security": [
                    *accumulator.security,
                    *rename_security_requirements(document.security, schemes),
                ],
                "tags": merged_tags,
            }
        )

    def _plan_renames(
        self, accumulator: ApiDocument, document: ApiDocument, source_suffix: str
    ) -> dict[str, str]:
        if not self._rename_duplicates:
            return {}
        renames: dict[str, str] = {}
        for category, entries in document.components.items():
            existing = accumulator.components.get(category, {})
            taken = set(existing) | set(entries)
            for name, definition in entries.items():
                if name not in existing or existing[name] == definition:
                    continue
                new_name = self._unique_name(name, source_suffix, taken)
                taken.add(new_name)
                renames[self._ref(category, name)] = self._ref(category, new_name)
        return renames

    @staticmethod
    def _unique_name(name: str, source_suffix: str, taken: set[str]) -> str:
        suffix = _UNSAFE_NAME_CHARS.sub("_", source_suffix) or "dup"
        candidate = f"{name}_{suffix}"
        counter = 2
        while candidate in taken:
            candidate = f"{name}_{suffix}_{counter}"
            counter += 1
        return candidate

    @staticmethod
    def _ref(category: str, name: str) -> str:
        return f"#/components/{category}/{name}"
