"""Execution mode registry.

Each mode the dispatcher recognizes maps to exactly one ModeConfig, selected
once when the chat command is parsed.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..models.execution import ExecutionMode

DEFAULT_TEMPLATE = "play.cpp.template"
NO_MAIN_TEMPLATE = "play-no-main.cpp.template"
EVAL_TEMPLATE = "eval.cpp.template"


@dataclass(frozen=True)
class ModeConfig:
    """How a mode turns a snippet into a compiled and executed program."""

    mode: ExecutionMode
    template: str
    # Used instead of ``template`` when the snippet defines its own main()
    entry_point_template: Optional[str] = None
    run_wrapper: Tuple[str, ...] = ()

    def build_run_command(self, binary_path: str) -> List[str]:
        """Build the run-stage command for a compiled binary."""
        return [*self.run_wrapper, binary_path]


MODES: Dict[ExecutionMode, ModeConfig] = {
    ExecutionMode.PLAY: ModeConfig(
        mode=ExecutionMode.PLAY,
        template=DEFAULT_TEMPLATE,
        entry_point_template=NO_MAIN_TEMPLATE,
    ),
    ExecutionMode.EVAL: ModeConfig(
        mode=ExecutionMode.EVAL,
        template=EVAL_TEMPLATE,
    ),
    ExecutionMode.VALGRIND: ModeConfig(
        mode=ExecutionMode.VALGRIND,
        template=DEFAULT_TEMPLATE,
        entry_point_template=NO_MAIN_TEMPLATE,
        run_wrapper=("valgrind",),
    ),
}


def get_mode(mode: ExecutionMode) -> ModeConfig:
    """Get the configuration for an execution mode."""
    return MODES[mode]


def get_supported_modes() -> List[str]:
    """Get the command words for all supported modes."""
    return [mode.value for mode in MODES]
