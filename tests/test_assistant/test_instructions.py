import pytest

from clippy.instructions import InstructionLoader


def test_packaged_prompts_are_available(monkeypatch):
    monkeypatch.delenv("CLIPPY_INSTRUCTIONS_DIR", raising=False)
    loader = InstructionLoader()

    assert loader.load("title_system_prompt.md")
    rendered = loader.render("reply_system_prompt.md", today="2025-06-01")
    assert "2025-06-01" in rendered
    assert "{today}" not in rendered


def test_render_keeps_unknown_placeholders(tmp_path):
    (tmp_path / "prompt.md").write_text("Hello {name}, today is {today}.", encoding="utf-8")
    loader = InstructionLoader(base_dir=tmp_path)

    assert loader.render("prompt.md", name="Ana") == "Hello Ana, today is {today}."


def test_override_dir_from_env(monkeypatch, tmp_path):
    override = tmp_path / "override"
    override.mkdir()
    (override / "title_system_prompt.md").write_text("Overridden", encoding="utf-8")
    monkeypatch.setenv("CLIPPY_INSTRUCTIONS_DIR", str(override))

    loader = InstructionLoader()

    assert loader.load("title_system_prompt.md") == "Overridden"
    assert "{today}" in loader.load("reply_system_prompt.md")


def test_missing_template_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        InstructionLoader(base_dir=tmp_path).load("nope.md")
