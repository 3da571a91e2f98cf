"""Section hierarchy parsing for linearized document text."""

from sectionizer.errors import (
    AlreadyLockedError,
    CrossParentError,
    LockTimeoutError,
    ParseError,
    RangeError,
    SectionizerError,
    SectionNotFoundError,
    StoreUnavailableError,
    TemplateConfigError,
)
from sectionizer.parsing_types import (
    ContiguityWarning,
    ContinuityWarning,
    DetectedHeading,
    ParseDiagnostics,
    ParserConfig,
    RangeValidation,
    Section,
    count_words,
)
from sectionizer.range_validator import RangeValidator
from sectionizer.section_builder import ParseResult, SectionBuilder, parse_document
from sectionizer.section_store import SectionStore
from sectionizer.section_tree import SectionTree
from sectionizer.templates import (
    PRESETS,
    HierarchyTemplate,
    LevelDefinition,
    get_template,
    load_template,
    template_from_levels,
)

__version__ = "0.1.0"

__all__ = [
    "PRESETS",
    "AlreadyLockedError",
    "ContiguityWarning",
    "ContinuityWarning",
    "CrossParentError",
    "DetectedHeading",
    "HierarchyTemplate",
    "LevelDefinition",
    "LockTimeoutError",
    "ParseDiagnostics",
    "ParseError",
    "ParseResult",
    "ParserConfig",
    "RangeError",
    "RangeValidation",
    "RangeValidator",
    "Section",
    "SectionBuilder",
    "SectionNotFoundError",
    "SectionStore",
    "SectionTree",
    "SectionizerError",
    "StoreUnavailableError",
    "TemplateConfigError",
    "count_words",
    "get_template",
    "load_template",
    "parse_document",
    "template_from_levels",
]
