"""Source templates wrapping user snippets into complete programs."""

import re
from functools import lru_cache
from pathlib import Path

import structlog

from ...config.modes import ModeConfig

logger = structlog.get_logger(__name__)

PLACEHOLDER = "%CODE"

# A function-like main definition with a body, possibly spanning lines
MAIN_DEFINITION = re.compile(r"int\s+main\s*\(.*\)\s*\{[\s\S]*\}")


def defines_entry_point(code: str) -> bool:
    """Whether the snippet already defines ``int main(...) { ... }``."""
    return MAIN_DEFINITION.search(code) is not None


class TemplateLibrary:
    """Loads templates from a directory and splices snippets into them."""

    def __init__(self, templates_dir: str):
        self._dir = Path(templates_dir)

    def select(self, mode: ModeConfig, code: str) -> str:
        """Pick the template name for ``code`` under ``mode``."""
        if mode.entry_point_template and defines_entry_point(code):
            return mode.entry_point_template
        return mode.template

    def load(self, name: str) -> str:
        """Read a template by file name."""
        return _read_template(str(self._dir / name))

    def materialize(self, name: str, code: str) -> str:
        """Substitute ``code`` into the template's placeholder."""
        template = self.load(name)
        if PLACEHOLDER not in template:
            logger.warning("Template has no code placeholder", template=name)
        return template.replace(PLACEHOLDER, code, 1)

    def build_source(self, mode: ModeConfig, code: str) -> str:
        """Select a template for ``code`` and produce the final source text."""
        return self.materialize(self.select(mode, code), code)


@lru_cache(maxsize=32)
def _read_template(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")
