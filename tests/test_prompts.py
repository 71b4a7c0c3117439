"""Tests for agent prompt file loading."""

from __future__ import annotations

from pathlib import Path

from subspawn.prompts import read_agent_prompt, read_prompt_file, strip_frontmatter


class TestStripFrontmatter:
    def test_removes_leading_block(self) -> None:
        text = "---\nname: librarian\ntools: read\n---\n\nYou are a librarian."
        assert strip_frontmatter(text) == "You are a librarian."

    def test_no_frontmatter(self) -> None:
        assert strip_frontmatter("Just a prompt.") == "Just a prompt."

    def test_unterminated_block_kept(self) -> None:
        text = "---\nname: x\nno closing fence"
        assert strip_frontmatter(text) == text


class TestReadPrompts:
    def test_read_prompt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "p.md"
        path.write_text("---\na: 1\n---\nBody\n", encoding="utf-8")
        assert read_prompt_file(path) == "Body"

    def test_named_prompt(self, tmp_path: Path) -> None:
        (tmp_path / "finder.md").write_text("Find things.\n", encoding="utf-8")
        assert read_agent_prompt("finder.md", prompt_dir=tmp_path) == "Find things."

    def test_missing_named_prompt_is_empty(self, tmp_path: Path) -> None:
        assert read_agent_prompt("nope.md", prompt_dir=tmp_path) == ""
