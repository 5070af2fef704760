"""tfweave: typed resource declarations, document synthesis and template analysis."""

from tfweave.errors import (
    ConditionalRequirementViolation,
    ConstraintViolation,
    DuplicateResourceError,
    InvalidFieldType,
    MissingRequiredField,
    MutualExclusivityViolation,
    ReferentialConsistencyViolation,
    TemplateSyntaxError,
    TfweaveError,
    UnknownReferenceTarget,
    UnknownResourceKind,
    ValidationError,
)
from tfweave.reference import Reference, ResourceHandle, data_ref, ref
from tfweave.schema import AttributeKind, AttributeSchema, BlockSchema, ResourceSchema

__version__ = "0.1.0"

__all__ = [
    "AnalysisReport",
    "AttributeKind",
    "AttributeSchema",
    "AttributeValidator",
    "Block",
    "BlockSchema",
    "CompilationResult",
    "ConditionalRequirementViolation",
    "ConstraintViolation",
    "DocumentBuilder",
    "DocumentSynthesizer",
    "DuplicateResourceError",
    "InvalidFieldType",
    "MissingRequiredField",
    "MutualExclusivityViolation",
    "Reference",
    "ReferentialConsistencyViolation",
    "ResourceHandle",
    "ResourceRegistry",
    "ResourceSchema",
    "SchemaRegistry",
    "Settings",
    "StructuralAnalyzer",
    "Template",
    "TemplateCompiler",
    "TemplateExtractor",
    "TemplateSyntaxError",
    "TfweaveError",
    "UnknownReferenceTarget",
    "UnknownResourceKind",
    "ValidatedAttributes",
    "ValidationError",
    "data_ref",
    "ref",
    "synthesize",
    "validate",
]

_LAZY = {
    "AttributeValidator": "tfweave.validator",
    "ValidatedAttributes": "tfweave.validator",
    "validate": "tfweave.validator",
    "Block": "tfweave.document",
    "DocumentBuilder": "tfweave.document",
    "DocumentSynthesizer": "tfweave.synthesizer",
    "synthesize": "tfweave.synthesizer",
    "ResourceRegistry": "tfweave.resources",
    "SchemaRegistry": "tfweave.registry",
    "Settings": "tfweave.config",
    "TemplateExtractor": "tfweave.extractor",
    "Template": "tfweave.compiler",
    "TemplateCompiler": "tfweave.compiler",
    "CompilationResult": "tfweave.compiler",
    "StructuralAnalyzer": "tfweave.analyzer",
    "AnalysisReport": "tfweave.analyzer",
}


def __getattr__(name: str):
    # compiler and analyzer pull in the YAML catalog; import them on first use
    module = _LAZY.get(name)
    if module is None:
        raise AttributeError(f"module 'tfweave' has no attribute {name!r}")
    import importlib

    return getattr(importlib.import_module(module), name)
