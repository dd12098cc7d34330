"""
Prompt Manager Service

Loads oracle prompt templates from prompts.json, renders them with
variable substitution and hot-reloads the file when it changes on disk.
"""

import json
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Optional


class PromptManager:
    """
    Centralized manager for oracle prompts

    Features:
    - Load prompts from prompts.json
    - Render templates with $variable substitution
    - Hot-reload on file changes
    """

    def __init__(self, prompts_file: str = "prompts.json"):
        self.prompts_file = Path(prompts_file)

        self._prompts_cache: Dict[str, Any] = {}
        self._file_mtime: Optional[float] = None

        self.reload()

    def reload(self) -> None:
        """Reload prompts from file (hot-reload support)"""
        if not self.prompts_file.exists():
            raise FileNotFoundError(f"Prompts file not found: {self.prompts_file}")

        with open(self.prompts_file, "r", encoding="utf-8") as f:
            self._prompts_cache = json.load(f)

        self._file_mtime = self.prompts_file.stat().st_mtime

    def _check_reload(self) -> None:
        """Check if file has changed and reload if needed"""
        if self.prompts_file.exists():
            current_mtime = self.prompts_file.stat().st_mtime
            if current_mtime != self._file_mtime:
                self.reload()

    def get_prompt(self, prompt_name: str) -> Dict[str, Any]:
        """
        Get a specific prompt configuration

        Raises:
            KeyError: If prompt not found
        """
        self._check_reload()

        if prompt_name not in self._prompts_cache.get("prompts", {}):
            raise KeyError(f"Prompt not found: {prompt_name}")

        return self._prompts_cache["prompts"][prompt_name].copy()

    def render_prompt(self, prompt_name: str, variables: Dict[str, Any]) -> str:
        """
        Render a prompt template with variable substitution

        Example:
            >>> pm = get_prompt_manager()
            >>> pm.render_prompt("draft_claims", {"topic": "remote work", "count": 3})
        """
        prompt_config = self.get_prompt(prompt_name)
        template = Template(prompt_config.get("template", ""))

        try:
            return template.substitute(variables)
        except KeyError as e:
            missing_var = str(e).strip("'")
            raise ValueError(
                f"Missing required variable '{missing_var}' for prompt '{prompt_name}'"
            ) from e

    def list_prompts(self) -> List[str]:
        self._check_reload()
        return list(self._prompts_cache.get("prompts", {}).keys())


# Global singleton instance
_prompt_manager_instance: Optional[PromptManager] = None


def get_prompt_manager() -> PromptManager:
    """Get global PromptManager singleton backed by the packaged prompts.json."""
    global _prompt_manager_instance

    if _prompt_manager_instance is None:
        prompts_file = Path(__file__).parent.parent / "prompts.json"
        _prompt_manager_instance = PromptManager(prompts_file=str(prompts_file))

    return _prompt_manager_instance
