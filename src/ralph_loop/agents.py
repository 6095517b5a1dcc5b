"""Agent invocation builders.

Each runner in ralph.toml is an argv template. A builder knows how a given
agent CLI expects to receive the prompt and turns the template into the
final argv (plus optional stdin text).

Usage:
    >>> from ralph_loop.agents import build_agent_invocation
    >>> argv, stdin = build_agent_invocation("claude", prompt, cfg.runner("claude"))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from .config import RunnerConfig

PROMPT_PLACEHOLDER = "{prompt}"


def _replace_placeholder(argv: List[str], prompt: str) -> Optional[List[str]]:
    if PROMPT_PLACEHOLDER not in argv:
        return None
    return [prompt if x == PROMPT_PLACEHOLDER else x for x in argv]


class AgentBuilder(ABC):
    """Turns a runner argv template and a prompt into a concrete invocation."""

    @abstractmethod
    def build_argv(
        self, prompt: str, config: RunnerConfig
    ) -> Tuple[List[str], Optional[str]]:
        """Return (argv, optional_stdin_text)."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the agent name."""


class ClaudeAgentBuilder(AgentBuilder):
    """Claude Code in headless print mode: ``claude ... -p "<prompt>"``."""

    def build_argv(
        self, prompt: str, config: RunnerConfig
    ) -> Tuple[List[str], Optional[str]]:
        argv = [str(x) for x in config.argv]

        replaced = _replace_placeholder(argv, prompt)
        if replaced is not None:
            return replaced, None

        if "-p" in argv:
            i = argv.index("-p")
            if i == len(argv) - 1 or str(argv[i + 1]).startswith("-"):
                argv.insert(i + 1, prompt)
            else:
                argv[i + 1] = prompt
        else:
            argv.extend(["-p", prompt])
        return argv, None

    @property
    def name(self) -> str:
        return "claude"


class CodexAgentBuilder(AgentBuilder):
    """Codex reads long prompts from stdin: ``codex exec --full-auto -``."""

    def build_argv(
        self, prompt: str, config: RunnerConfig
    ) -> Tuple[List[str], Optional[str]]:
        argv = [str(x) for x in config.argv]

        replaced = _replace_placeholder(argv, prompt)
        if replaced is not None:
            return replaced, None

        if "-" not in argv:
            argv.append("-")
        return argv, prompt

    @property
    def name(self) -> str:
        return "codex"


class GenericAgentBuilder(AgentBuilder):
    """Custom runners: fill ``{prompt}``, read stdin after ``-``, or append the prompt."""

    def __init__(self, name: str):
        self._name = name.lower().strip()

    def build_argv(
        self, prompt: str, config: RunnerConfig
    ) -> Tuple[List[str], Optional[str]]:
        argv = [str(x) for x in config.argv]

        replaced = _replace_placeholder(argv, prompt)
        if replaced is not None:
            return replaced, None

        # A lone "-" means the tool reads its prompt from stdin.
        if "-" in argv:
            return argv, prompt

        argv.append(prompt)
        return argv, None

    @property
    def name(self) -> str:
        return self._name


_AGENT_BUILDERS: dict[str, AgentBuilder] = {
    "claude": ClaudeAgentBuilder(),
    "codex": CodexAgentBuilder(),
}


def get_agent_builder(agent: str) -> AgentBuilder:
    """Return the builder for an agent name, falling back to the generic one.

    Raises:
        ValueError: If the agent name is empty
    """
    agent_l = agent.lower().strip()
    if not agent_l:
        raise ValueError("Agent name cannot be empty")
    return _AGENT_BUILDERS.get(agent_l) or GenericAgentBuilder(agent_l)


def build_agent_invocation(
    agent: str, prompt: str, config: RunnerConfig
) -> Tuple[List[str], Optional[str]]:
    """Build the argv (and stdin text, if any) for one agent invocation."""
    return get_agent_builder(agent).build_argv(prompt, config)
