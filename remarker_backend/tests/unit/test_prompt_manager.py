import json
import os

import pytest

from remarker_backend.services.prompt_manager import PromptManager, get_prompt_manager


def _write_prompts(path, template):
    path.write_text(json.dumps({"prompts": {"greet": {"template": template}}}), encoding="utf-8")


def test_packaged_prompts_cover_every_oracle_call():
    names = set(get_prompt_manager().list_prompts())

    assert {"draft_claims", "draft_stanza", "classify_stance"} <= names


def test_render_substitutes_variables(tmp_path):
    prompts_file = tmp_path / "prompts.json"
    _write_prompts(prompts_file, "Hello $name")

    manager = PromptManager(str(prompts_file))

    assert manager.render_prompt("greet", {"name": "alice"}) == "Hello alice"


def test_missing_variable_and_unknown_prompt(tmp_path):
    prompts_file = tmp_path / "prompts.json"
    _write_prompts(prompts_file, "Hello $name")
    manager = PromptManager(str(prompts_file))

    with pytest.raises(ValueError, match="Missing required variable 'name'"):
        manager.render_prompt("greet", {})
    with pytest.raises(KeyError):
        manager.get_prompt("absent")


def test_hot_reload_on_change(tmp_path):
    prompts_file = tmp_path / "prompts.json"
    _write_prompts(prompts_file, "Hello $name")
    manager = PromptManager(str(prompts_file))

    _write_prompts(prompts_file, "Goodbye $name")
    stat = prompts_file.stat()
    os.utime(prompts_file, (stat.st_atime, stat.st_mtime + 10))

    assert manager.render_prompt("greet", {"name": "bob"}) == "Goodbye bob"


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        PromptManager(str(tmp_path / "absent.json"))
