"""Shared utility functions for murmur."""

from __future__ import annotations

import time


def expand_file_template(template: str | None, model: str, now: float | None = None) -> str | None:
    """Expand a log/history file name template.

    Recognized sequences:
    - %s: seconds since the epoch
    - %m: the model name
    - %%: a literal '%'

    Any other %x is kept verbatim and a trailing lone '%' is dropped.
    Returns None when the template is unset or expands to nothing, which
    callers read as "feature disabled".
    """
    if not template:
        return None
    seconds = str(int(time.time() if now is None else now))
    out: list[str] = []
    pending = False
    for c in template:
        if pending:
            if c == "s":
                out.append(seconds)
            elif c == "m":
                out.append(model)
            elif c == "%":
                out.append("%")
            else:
                out.append("%" + c)
            pending = False
        elif c == "%":
            pending = True
        else:
            out.append(c)
    expanded = "".join(out)
    return expanded or None
