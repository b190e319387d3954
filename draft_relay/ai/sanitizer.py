"""Post-processing for generated drafts."""

import re

# Non-greedy and DOTALL-equivalent: each ``` ... ``` pair is removed
# separately, including blocks that span lines.
_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")


def strip_code_fences(text: str) -> str:
    """Remove fenced blocks the model slipped in despite the plain-text hint, then trim."""
    return _CODE_FENCE_RE.sub("", text).strip()
