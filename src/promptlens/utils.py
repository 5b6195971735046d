from __future__ import annotations

import json
import re
from typing import Any

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


def slugify(text: str) -> str:
    """'Missing Context!' -> 'missing-context'."""
    return _SLUG_RE.sub("-", (text or "").lower()).strip("-")


def title_case(issue_id: str) -> str:
    """'no-context' -> 'No Context'."""
    return " ".join(word[:1].upper() + word[1:].lower() for word in issue_id.split("-") if word)

