from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Iterable, List, Optional, Tuple, Union

from galtrans.contracts import ReplacementRule

logger = logging.getLogger(__name__)

_FLAG_BITS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}
_DOLLAR_REF = re.compile(r"\$(?:(\$)|(\d+)|\{(\w+)\})")


@lru_cache(maxsize=256)
def _parse_replacement(replacement: str) -> Tuple[Tuple[str, Union[str, int, None]], ...]:
    # (literal, group) pairs; only "$" is special, backslashes stay literal.
    parts: List[Tuple[str, Union[str, int, None]]] = []
    pos = 0
    for m in _DOLLAR_REF.finditer(replacement):
        literal = replacement[pos:m.start()]
        if m.group(1) is not None:
            parts.append((literal + "$", None))
        elif m.group(2) is not None:
            parts.append((literal, int(m.group(2))))
        else:
            name = m.group(3)
            parts.append((literal, int(name) if name.isdigit() else name))
        pos = m.end()
    parts.append((replacement[pos:], None))
    return tuple(parts)


def _expand(m: re.Match[str], parts) -> str:
    out: List[str] = []
    for literal, group in parts:
        out.append(literal)
        if group is None:
            continue
        try:
            out.append(m.group(group) or "")
        except IndexError:
            # unknown group expands to nothing
            pass
    return "".join(out)


@lru_cache(maxsize=256)
def compile_rule(pattern: str, flags: str) -> re.Pattern[str]:
    bits = 0
    for ch in flags.lower():
        bits |= _FLAG_BITS.get(ch, 0)
    return re.compile(pattern, bits)


def _replace_count(flags: str) -> int:
    # Empty flags keep replace-all; an explicit flag string without "g" means first match only.
    if not flags or "g" in flags.lower():
        return 0
    return 1


def apply_rule(text: str, rule: ReplacementRule) -> Optional[str]:
    """Return the rewritten text, or None when the rule cannot be applied."""
    if not (rule.pattern or "").strip():
        return None
    flags = rule.flags or ""
    try:
        regex = compile_rule(rule.pattern, flags)
    except re.error as e:
        logger.warning(
            "replacement_rule_skipped",
            extra={"pattern": rule.pattern, "flags": flags, "error": str(e)},
        )
        return None
    parts = _parse_replacement(rule.replacement or "")
    return regex.sub(lambda m: _expand(m, parts), text, count=_replace_count(flags))


def normalize(raw: str, rules: Iterable[ReplacementRule] = ()) -> str:
    out = (raw or "").strip()
    for rule in rules:
        rewritten = apply_rule(out, rule)
        if rewritten is not None:
            out = rewritten
    return out
