"""
Template resolution for ``{{ path }}`` placeholders.

Two substitution modes:

  COERCE    every placeholder is replaced by the text form of its value
  PRESERVE  a template that is exactly one placeholder returns the value
            itself (number, mapping, list ...); mixed text falls back to COERCE

Unresolvable paths resolve to ``None`` and substitute as empty text.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional

from calcflow.expressions.namespace import lookup_path, thaw

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

# Single- or double-quoted literal, backslash escapes allowed
QUOTED_RE = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"")


class SubstitutionMode(str, Enum):
    COERCE = "coerce"
    PRESERVE = "preserve"


def find_placeholders(template: str) -> list[str]:
    """Return the paths of all placeholders in *template*, in order."""
    return [m.group(1) for m in PLACEHOLDER_RE.finditer(template)]


def single_placeholder(template: Any) -> Optional[str]:
    """Return the path if the trimmed *template* is exactly one placeholder."""
    if not isinstance(template, str):
        return None
    match = PLACEHOLDER_RE.fullmatch(template.strip())
    return match.group(1) if match else None


def to_text(value: Any) -> str:
    """Text form used by COERCE substitution."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(thaw(value), separators=(",", ":"), default=str)
    return str(value)


def resolve(
    template: Any,
    namespace: Mapping[str, Any],
    mode: SubstitutionMode = SubstitutionMode.COERCE,
    quote_aware: bool = False,
) -> Any:
    """Resolve placeholders in *template* against *namespace*.

    With ``quote_aware`` set, placeholders inside quoted literals are left
    unsubstituted and only their delimiters are blanked, matching how an
    engine whose tokenizer treats quoted text as opaque would see them.
    """
    if not isinstance(template, str) or "{{" not in template:
        return template

    if mode == SubstitutionMode.PRESERVE:
        path = single_placeholder(template)
        if path is not None:
            return lookup_path(namespace, path)

    def _substitute(text: str) -> str:
        return PLACEHOLDER_RE.sub(
            lambda m: to_text(lookup_path(namespace, m.group(1))), text
        )

    if not quote_aware:
        return _substitute(template)

    parts: list[str] = []
    position = 0
    for literal in QUOTED_RE.finditer(template):
        parts.append(_substitute(template[position:literal.start()]))
        parts.append(PLACEHOLDER_RE.sub(lambda m: f" {m.group(1)} ", literal.group(0)))
        position = literal.end()
    parts.append(_substitute(template[position:]))
    return "".join(parts)


def resolve_value(value: Any, namespace: Mapping[str, Any]) -> Any:
    """Recursively PRESERVE-resolve strings inside dicts and lists.

    Scalar non-string values are returned unchanged.
    """
    if isinstance(value, str):
        return resolve(value, namespace, SubstitutionMode.PRESERVE)
    if isinstance(value, Mapping):
        return {k: resolve_value(v, namespace) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(v, namespace) for v in value]
    return value
