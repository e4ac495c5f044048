"""Snippet execution services.

- pipeline.py: ExecutionPipeline, the compile-then-run workflow
- templates.py: TemplateLibrary, snippet-to-source substitution
"""

from .pipeline import ExecutionPipeline, validate_code
from .templates import TemplateLibrary, defines_entry_point

__all__ = [
    "ExecutionPipeline",
    "TemplateLibrary",
    "defines_entry_point",
    "validate_code",
]
