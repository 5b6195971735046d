from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional

from ...models import SchemaType

DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


class PromptLoader:
    """Load system prompts by schema name from ``prompts/manifest.json``."""

    def __init__(self, prompts_dir: Path = DEFAULT_PROMPTS_DIR) -> None:
        self.prompts_dir = prompts_dir
        self.manifest = self._load_manifest()
        self._cache: Dict[str, str] = {}

    def _load_manifest(self) -> dict:
        manifest_path = self.prompts_dir / "manifest.json"
        if not manifest_path.exists():
            return {
                "schema_version": "1.0",
                "prompts": {},
                "default_prompt": None,
            }
        return json.loads(manifest_path.read_text(encoding="utf-8"))

    def _select_entry(self, name: Optional[str]) -> Optional[dict]:
        prompts = self.manifest.get("prompts") or {}
        if name and name in prompts:
            return prompts[name]
        default_name = self.manifest.get("default_prompt")
        if default_name:
            return prompts.get(default_name)
        return None

    def get_system_prompt(self, schema: Optional[SchemaType] = None) -> str:
        """
        Load the system prompt that asks for ``schema``.

        Falls back to default_prompt for unknown names, and to the built-in
        minimal prompt when the manifest or the prompt file is missing.
        """
        key = schema or ""
        if key in self._cache:
            return self._cache[key]

        entry = self._select_entry(schema)
        file_name = (entry or {}).get("file")
        prompt_path = self.prompts_dir / file_name if file_name else None
        if prompt_path is None or not prompt_path.exists():
            content = self.builtin_minimal_prompt()
        else:
            content = prompt_path.read_text(encoding="utf-8").strip()

        self._cache[key] = content
        return content

    @staticmethod
    def builtin_minimal_prompt() -> str:
        """Fallback prompt when the packaged prompt files are unavailable."""
        return (
            "You analyze prompts for quality issues.\n"
            'Respond with JSON only: {"issues": ["issue-id", ...], "score": 0-100}\n\n'
            "Valid issue IDs: vague, no-context, too-broad, no-goal, imperative, "
            "missing-technical-details, unclear-priorities, insufficient-constraints\n"
        )
