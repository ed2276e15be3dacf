"""Prompt text sent to the style guide agent."""

from __future__ import annotations

import json
from pathlib import Path

PROGRESS_PREFIX = "[PROGRESS]"

_ANALYSIS_TASK = (
    "Decode the developer's coding DNA by analyzing the patterns, preferences, "
    "habits and decisions that make this code distinctively theirs."
)
_SYNTHESIS_TASK = (
    "Synthesize one style guide for this directory from the style guides of its "
    "subdirectories and the files below, revealing the philosophy that unites them."
)

_OUTPUT_SECTIONS = (
    "# 1. CORE PHILOSOPHY",
    "# 2. NAMING PATTERNS",
    "# 3. CODE ORGANIZATION",
    "# 4. ERROR HANDLING",
    "# 5. STATE MANAGEMENT",
    "# 6. API DESIGN",
    "# 7. TESTING APPROACH",
    "# 8. PERFORMANCE PATTERNS",
    "# 9. ANTI-PATTERNS",
    "# 10. DECISION TREES",
    "# 11. AI AGENT INSTRUCTIONS",
)


def build_style_guide_prompt(
    *,
    language: str,
    base_dir: Path,
    files: tuple[str, ...] | list[str],
    child_artifacts: dict[str, str] | None = None,
) -> str:
    """Render the agent prompt for one language in one directory."""

    synthesis = bool(child_artifacts)
    relative_files = [_relative(Path(file), base_dir) for file in files]
    lines = [
        "Role: Code Anthropologist & Style Detective",
        f"Task: {_SYNTHESIS_TASK if synthesis else _ANALYSIS_TASK}",
        "",
        "Mission: write a style guide precise enough that an AI agent can contribute "
        "code indistinguishable from the original author's.",
        "",
        f"IMPORTANT: Create a file named 'style.{language}.md' in the current working "
        "directory. Start it with YAML frontmatter:",
        "---",
        f"description: {language} Style Guide",
        f"globs: **/*.{language}",
        "alwaysApply: false",
        "---",
        "Follow the frontmatter with these sections:",
        *_OUTPUT_SECTIONS,
        "",
        f"Report progress by printing lines prefixed with {PROGRESS_PREFIX}. "
        "Only the first line of each message is shown to the user.",
        "Every pattern must be evidenced by 2-3 real code snippets from the files.",
        "",
        f"Directory: {base_dir}",
        f"File count: {len(relative_files)}",
        "Files:",
        *relative_files,
    ]
    if synthesis and child_artifacts:
        lines.extend(
            [
                "",
                f"Child style guides ({len(child_artifacts)} subdirectories), "
                "keyed by relative directory:",
                json.dumps(child_artifacts, ensure_ascii=False, indent=2, sort_keys=True),
            ],
        )
    return "\n".join(lines) + "\n"


def parse_progress_line(line: str) -> str | None:
    """Return the message of a ``[PROGRESS]`` line, or None for other output."""

    if not line.startswith(PROGRESS_PREFIX):
        return None
    message = line[len(PROGRESS_PREFIX) :].strip()
    return message or None


def _relative(path: Path, base_dir: Path) -> str:
    try:
        return path.relative_to(base_dir).as_posix()
    except ValueError:
        return path.as_posix()
