"""Validate configuration document structure and declarations."""

import re
from typing import Any, Dict, List
from ..registry.registry import ProviderRegistry
from ..utils.errors import ConfigurationError
from ..utils.logging import get_logger
from .models import Configuration

logger = get_logger("ingest.config_validator")

NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
META_ARGUMENTS = ("depends_on", "lifecycle")


def validate_document_structure(document: Dict[str, Any]) -> None:
    """
    Validate the raw configuration document shape.

    Args:
        document: Parsed YAML/JSON configuration

    Raises:
        ConfigurationError: If the structure is invalid
    """
    if not isinstance(document, dict):
        raise ConfigurationError(
            "Configuration must be a mapping with 'variables' and 'resources' sections."
        )

    unknown_sections = [key for key in document if key not in ("variables", "resources")]
    if unknown_sections:
        raise ConfigurationError(
            f"Unknown top-level sections: {', '.join(sorted(unknown_sections))}. "
            "Only 'variables' and 'resources' are supported."
        )

    variables = document.get("variables") or {}
    if not isinstance(variables, dict):
        raise ConfigurationError("'variables' must be a mapping of variable name to definition")
    for name, definition in variables.items():
        if not NAME_PATTERN.match(str(name)):
            raise ConfigurationError(f"Invalid variable name: {name}")
        if definition is not None and not isinstance(definition, dict):
            raise ConfigurationError(
                f"Variable '{name}' must be a mapping (e.g. {{default: ..., description: ...}})"
            )
        unknown = [key for key in (definition or {}) if key not in ("default", "description")]
        if unknown:
            raise ConfigurationError(f"Variable '{name}' has unknown keys: {', '.join(sorted(unknown))}")

    resources = document.get("resources") or {}
    if not isinstance(resources, dict):
        raise ConfigurationError("'resources' must be a mapping of kind -> name -> attributes")
    for kind, blocks in resources.items():
        if not NAME_PATTERN.match(str(kind)):
            raise ConfigurationError(f"Invalid resource kind: {kind}")
        if not isinstance(blocks, dict):
            raise ConfigurationError(f"Resources of kind '{kind}' must be a mapping of name -> attributes")
        for name, body in blocks.items():
            if not NAME_PATTERN.match(str(name)):
                raise ConfigurationError(f"Invalid resource name: {kind}.{name}")
            if body is not None and not isinstance(body, dict):
                raise ConfigurationError(f"Resource {kind}.{name} must be a mapping of attributes")
            depends_on = (body or {}).get("depends_on", [])
            if not isinstance(depends_on, list) or not all(isinstance(d, str) for d in depends_on):
                raise ConfigurationError(f"Resource {kind}.{name}: 'depends_on' must be a list of addresses")

    logger.debug("Configuration structure validation passed")


def validate_configuration(configuration: Configuration, registry: ProviderRegistry) -> None:
    """
    Validate declarations against registered kind schemas and each other.

    Raises:
        ConfigurationError: Listing every problem found
    """
    problems: List[str] = []
    addresses = set(configuration.addresses())

    for resource in configuration.resources:
        registered = registry.find(resource.kind)
        if registered is None:
            problems.append(f"{resource.address}: unknown resource kind '{resource.kind}'")
            continue

        for problem in registered.schema.validate_attributes(resource.attributes):
            problems.append(f"{resource.address}: {problem}")

        for reference in resource.references():
            if reference.address == resource.address:
                problems.append(f"{resource.address}: references itself via {reference}")
                continue
            if reference.address not in addresses:
                problems.append(f"{resource.address}: reference to undeclared resource {reference}")
                continue
            target_kind = reference.address.split(".", 1)[0]
            target = registry.find(target_kind)
            if target and reference.attribute != "id" and reference.attribute not in target.schema.attributes:
                problems.append(
                    f"{resource.address}: {reference} is not an attribute of kind '{target_kind}'"
                )

        for dependency in resource.depends_on:
            if dependency not in addresses:
                problems.append(f"{resource.address}: depends_on undeclared resource {dependency}")

    if problems:
        raise ConfigurationError(
            "Invalid configuration:\n  - " + "\n  - ".join(problems)
        )

    logger.debug(f"Validated {len(configuration.resources)} resource declarations")
