"""Load configuration documents and resolve variables into declarations."""

import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import yaml
from pydantic import ValidationError
from ..registry.registry import ProviderRegistry
from ..utils.errors import ConfigurationError
from ..utils.logging import get_logger
from .config_validator import META_ARGUMENTS, validate_configuration, validate_document_structure
from .models import Configuration, Lifecycle, Reference, ResourceDeclaration, VariableDeclaration

logger = get_logger("ingest.config_loader")

WHOLE_EXPRESSION = re.compile(r"^\$\{\s*([^}]+?)\s*\}$")
EMBEDDED_EXPRESSION = re.compile(r"\$\{\s*([^}]+?)\s*\}")


def load_document(path: str) -> Dict[str, Any]:
    """
    Read a YAML or JSON file into a mapping.

    Raises:
        ConfigurationError: If the file is missing or cannot be parsed
    """
    doc_path = Path(path)

    if not doc_path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    if not doc_path.is_file():
        raise ConfigurationError(f"Path is not a file: {path}")

    try:
        with open(doc_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML/JSON in {path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error reading {path}: {e}")

    return data if data is not None else {}


def parse_var_overrides(pairs: Iterable[str]) -> Dict[str, Any]:
    """
    Parse KEY=VALUE strings from the command line.

    Values are YAML-decoded, so '3' becomes an int and '[a, b]' a list.
    """
    overrides = {}
    for pair in pairs:
        if "=" not in pair:
            raise ConfigurationError(f"Variable override must be KEY=VALUE: {pair}")
        key, raw = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise ConfigurationError(f"Variable override has an empty name: {pair}")
        try:
            overrides[key] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            overrides[key] = raw
    return overrides


def load_configuration(
    config_path: str,
    registry: Optional[ProviderRegistry] = None,
    var_files: Optional[List[str]] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> Configuration:
    """
    Load a configuration file into validated resource declarations.

    Variable precedence: defaults < var files (in order) < overrides.

    Args:
        config_path: Path to YAML/JSON configuration
        registry: Registry to validate kinds and attributes against (optional)
        var_files: Paths to variable value files
        overrides: Variable values from the command line

    Returns:
        Immutable Configuration

    Raises:
        ConfigurationError: On any malformed declaration or unresolved reference
    """
    document = load_document(config_path)
    values: Dict[str, Any] = {}
    for var_file in var_files or []:
        data = load_document(var_file)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Variable file must contain a mapping: {var_file}")
        values.update(data)
    values.update(overrides or {})

    configuration = parse_configuration(document, values, source=str(config_path))
    if registry is not None:
        validate_configuration(configuration, registry)

    logger.info(
        f"Loaded configuration from {config_path} "
        f"({len(configuration.resources)} resources, {len(configuration.variables)} variables)"
    )
    return configuration


def parse_configuration(
    document: Dict[str, Any],
    values: Optional[Dict[str, Any]] = None,
    source: Optional[str] = None
) -> Configuration:
    """Parse an already-loaded document into a Configuration."""
    validate_document_structure(document)
    variables = _resolve_variables(document.get("variables") or {}, values or {})

    declarations = []
    for kind, blocks in (document.get("resources") or {}).items():
        for name, body in blocks.items():
            declarations.append(_parse_resource(str(kind), str(name), body or {}, variables))

    declarations.sort(key=lambda d: d.address)
    return Configuration(source=source, variables=variables, resources=tuple(declarations))


def _resolve_variables(definitions: Dict[str, Any], values: Dict[str, Any]) -> Dict[str, Any]:
    declared = {}
    for name, definition in definitions.items():
        definition = definition or {}
        declared[name] = VariableDeclaration(
            name=name,
            default=definition.get("default"),
            description=definition.get("description", ""),
            has_default="default" in definition,
        )

    undeclared = [name for name in values if name not in declared]
    if undeclared:
        raise ConfigurationError(f"Values given for undeclared variables: {', '.join(sorted(undeclared))}")

    resolved = {}
    missing = []
    for name, variable in declared.items():
        if name in values:
            resolved[name] = values[name]
        elif variable.has_default:
            resolved[name] = variable.default
        else:
            missing.append(name)
    if missing:
        raise ConfigurationError(f"No value for required variables: {', '.join(sorted(missing))}")
    return resolved


def _parse_resource(kind: str, name: str, body: Dict[str, Any], variables: Dict[str, Any]) -> ResourceDeclaration:
    address = f"{kind}.{name}"
    attributes = {}
    for key, value in body.items():
        if key in META_ARGUMENTS:
            continue
        attributes[key] = _parse_value(value, variables, address)

    try:
        lifecycle = Lifecycle(**(body.get("lifecycle") or {}))
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid lifecycle block in {address}: {e}")

    return ResourceDeclaration(
        kind=kind,
        name=name,
        attributes=attributes,
        depends_on=frozenset(body.get("depends_on", [])),
        lifecycle=lifecycle,
    )


def _parse_value(value: Any, variables: Dict[str, Any], address: str) -> Any:
    """Substitute variables and turn reference expressions into Reference objects."""
    if isinstance(value, dict):
        if set(value) == {"ref"} and isinstance(value["ref"], str):
            return _parse_reference(value["ref"], address)
        return {k: _parse_value(v, variables, address) for k, v in value.items()}
    if isinstance(value, list):
        return [_parse_value(item, variables, address) for item in value]
    if not isinstance(value, str) or "${" not in value:
        return value

    whole = WHOLE_EXPRESSION.match(value)
    if whole:
        expression = whole.group(1)
        if expression.startswith("var."):
            return _lookup_variable(expression[4:], variables, address)
        return _parse_reference(expression, address)

    def substitute(match):
        expression = match.group(1)
        if not expression.startswith("var."):
            raise ConfigurationError(
                f"{address}: resource reference '${{{expression}}}' must be the whole value, "
                "not embedded in a string"
            )
        return str(_lookup_variable(expression[4:], variables, address))

    return EMBEDDED_EXPRESSION.sub(substitute, value)


def _lookup_variable(name: str, variables: Dict[str, Any], address: str) -> Any:
    if name not in variables:
        raise ConfigurationError(f"{address}: reference to undeclared variable '{name}'")
    return variables[name]


def _parse_reference(expression: str, address: str) -> Reference:
    try:
        return Reference.parse(expression)
    except ValueError as e:
        raise ConfigurationError(f"{address}: {e}")
