from __future__ import annotations

import re

TOKENISH = re.compile(r"(?i)(secret|token|password|apikey|api_key|_key=|database_url)")
HEX_LONG = re.compile(r"\b[0-9a-f]{32,}\b", re.I)
URL_CREDENTIALS = re.compile(r"(://[^:/\s]+:)([^@\s]+)(@)")


def redact_string(s: str) -> str:
    if TOKENISH.search(s) or HEX_LONG.search(s):
        return "[REDACTED]"
    return URL_CREDENTIALS.sub(r"\1[REDACTED]\3", s)



def redact_lines(text: str) -> str:
    """Redact multi-line output such as container logs one line at a time."""
    return "\n".join(redact_string(line) for line in text.splitlines())
