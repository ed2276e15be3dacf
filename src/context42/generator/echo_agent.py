"""Local deterministic agent for dry runs and subprocess integration tests.

Reads the prompt from stdin, prints ``[PROGRESS]`` lines and writes
``style.<language>.md`` into the current directory:

    CONTEXT42_COMMAND_TEMPLATE="python -m context42.generator.echo_agent" context42 -i src
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

from context42.generator.base import style_guide_filename
from context42.generator.prompts import PROGRESS_PREFIX


def main(argv: list[str] | None = None) -> int:
    """Write a placeholder style guide for the prompt on stdin."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--language", default=os.getenv("CONTEXT42_LANGUAGE", ""))
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--stderr", default="")
    parser.add_argument("--no-write", action="store_true")
    args = parser.parse_args(argv)

    prompt = sys.stdin.read()
    if not args.language:
        print("No language given (set CONTEXT42_LANGUAGE).", file=sys.stderr)
        return 2

    _progress(f"Analyzing {args.language} files")
    if args.sleep > 0:
        time.sleep(args.sleep)
    if args.exit_code != 0:
        if args.stderr:
            print(args.stderr, file=sys.stderr)
        return args.exit_code

    if not args.no_write:
        _progress(f"Writing {style_guide_filename(args.language)}")
        Path(style_guide_filename(args.language)).write_text(
            _render_guide(language=args.language, prompt=prompt),
            "utf-8",
        )
    _progress("Done")
    return 0


def _render_guide(*, language: str, prompt: str) -> str:
    file_count = "0"
    for line in prompt.splitlines():
        if line.startswith("File count:"):
            file_count = line.split(":", 1)[1].strip()
            break
    children = [item for item in os.getenv("CONTEXT42_CHILD_DIRECTORIES", "").split(",") if item]
    lines = [
        "---",
        f"description: {language} Style Guide",
        f"globs: **/*.{language}",
        "alwaysApply: false",
        "---",
        "",
        "# 1. CORE PHILOSOPHY",
        f"Placeholder guide for {file_count} {language} file(s) in {Path.cwd().name}.",
    ]
    if children:
        lines.append(f"Synthesized from: {', '.join(children)}")
    return "\n".join(lines) + "\n"


def _progress(message: str) -> None:
    print(f"{PROGRESS_PREFIX} {message}", flush=True)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
