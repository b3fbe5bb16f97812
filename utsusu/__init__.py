"""utsusu - stamp out files and directory trees from named templates.

The same pipeline backs the ``utsusu`` CLI and the library surface below.
"""

__version__ = "0.1.0"

# Configure logging for library use
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .context.builder import RenderContext, build_context
from .core.errors import (
    ConflictError,
    ContextError,
    InvalidTemplateError,
    MissingVariableError,
    RenderError,
    StampCancelledError,
    StampError,
    StampIOError,
    TemplateNotFoundError,
    UnsupportedEntryError,
)
from .core.models import (
    ConflictPolicy,
    MaterializationResult,
    StampOptions,
    SymlinkPolicy,
)
from .pipeline import stamp
from .rendering.engine import JinjaRenderer, PlaceholderRenderer, get_renderer
from .templates.locator import locate
from .templates.template import Template, load_template

__all__ = [
    "ConflictError",
    "ConflictPolicy",
    "ContextError",
    "InvalidTemplateError",
    "JinjaRenderer",
    "MaterializationResult",
    "MissingVariableError",
    "PlaceholderRenderer",
    "RenderContext",
    "RenderError",
    "StampCancelledError",
    "StampError",
    "StampIOError",
    "StampOptions",
    "SymlinkPolicy",
    "Template",
    "TemplateNotFoundError",
    "UnsupportedEntryError",
    "build_context",
    "get_renderer",
    "load_template",
    "locate",
    "stamp",
]
