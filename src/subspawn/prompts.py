"""Agent prompt files — markdown with optional YAML frontmatter."""

from __future__ import annotations

from pathlib import Path

#: Where named agent prompts live when referenced by bare filename.
AGENT_PROMPT_DIR = Path.home() / ".pi" / "agent" / "agents"


def strip_frontmatter(content: str) -> str:
    """Return the body of a prompt file, dropping a leading ``---`` block."""
    if content.startswith("---"):
        end = content.find("\n---", 3)
        if end != -1:
            return content[end + 4 :].strip()
    return content


def read_prompt_file(path: Path) -> str:
    """Read a prompt file and return its body.

    Raises:
        OSError: If the file cannot be read.
    """
    return strip_frontmatter(path.read_text(encoding="utf-8")).strip()


def read_agent_prompt(filename: str, prompt_dir: Path | None = None) -> str:
    """Read a named agent prompt, returning ``""`` if it does not exist."""
    path = (prompt_dir or AGENT_PROMPT_DIR) / filename
    try:
        return read_prompt_file(path)
    except OSError:
        return ""
