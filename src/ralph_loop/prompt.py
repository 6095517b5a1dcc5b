"""The instructions sent to the agent on every iteration.

The prompt is the contract with the agent: one story per iteration, quality
checks before committing, learnings appended to the progress log, and the
story flagged ``passes: true`` in the task list when it is done. The driver
only ever observes that last effect.
"""

from __future__ import annotations

from .config import FilesConfig
from .preflight import COMPLETION_MARKER

PROMPT_TEMPLATE = """\
You are an autonomous coding agent working through a product requirements \
document one user story at a time.

1. Read {prd} and {instructions} in the project root. Read {progress} for \
learnings recorded by earlier iterations.
2. Pick the highest-priority user story in {prd} whose "passes" field is \
false. Work on that one story only.
3. Implement the story.
4. Run the project's quality checks (typecheck, lint, tests) and fix any \
failures before continuing.
5. Append your learnings to {progress}: what you implemented, the files you \
changed, and anything the next iteration should know.
6. Commit all changes with the message format: [STORY-ID] Description
7. Update {prd} to set "passes": true on the story you completed.

If every story in {prd} has "passes": true when you are finished, reply with \
{marker}.
"""


def build_prompt(files: FilesConfig) -> str:
    return PROMPT_TEMPLATE.format(
        prd=files.prd,
        instructions=files.instructions,
        progress=files.progress,
        marker=COMPLETION_MARKER,
    )
