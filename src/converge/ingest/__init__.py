"""Configuration ingestion - documents, variables and resource declarations."""

from .models import Configuration, Lifecycle, Reference, ResourceDeclaration, VariableDeclaration
from .config_loader import load_configuration, load_document, parse_configuration, parse_var_overrides

__all__ = [
    "Configuration",
    "Lifecycle",
    "Reference",
    "ResourceDeclaration",
    "VariableDeclaration",
    "load_configuration",
    "load_document",
    "parse_configuration",
    "parse_var_overrides",
]
