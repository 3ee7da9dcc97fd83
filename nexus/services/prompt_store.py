from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


class PromptCatalog:
    """Dotted-key prompt templates loaded from a JSON file.

    The file is re-read when its mtime changes, so prompts can be tuned
    without restarting the server.
    """

    def __init__(self, path: Path = PROMPTS_PATH):
        self.path = Path(path)
        self._cache: dict[str, Any] | None = None
        self._mtime_ns: int | None = None

    def _load(self) -> dict[str, Any]:
        mtime_ns = self.path.stat().st_mtime_ns
        if self._cache is not None and self._mtime_ns == mtime_ns:
            return self._cache

        payload = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Prompt catalog must be a JSON object: {self.path}")
        self._cache = payload
        self._mtime_ns = mtime_ns
        return payload

    def template(self, key: str) -> str:
        node: Any = self._load()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                raise KeyError(f"Prompt key not found: {key}")
            node = node[part]
        if not isinstance(node, str):
            raise TypeError(f"Prompt key must map to a string: {key}")
        return node

    def render(self, key: str, **values: Any) -> str:
        # Substituted values are inserted verbatim, `$` in them is not expanded.
        template = Template(self.template(key))
        try:
            return template.substitute(**values)
        except KeyError as exc:
            raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{key}'") from exc

    def clear(self) -> None:
        self._cache = None
        self._mtime_ns = None


_catalog = PromptCatalog()


def render_prompt(key: str, **values: Any) -> str:
    return _catalog.render(key, **values)
