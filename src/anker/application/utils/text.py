import re
from typing import Any

import yaml  # type: ignore
import yaml.constructor

# ---------- Frontmatter helpers ----------


class UniqueKeyLoader(yaml.SafeLoader):
    """Custom YAML loader that forbids duplicate keys."""

    def construct_mapping(self, node, deep=False):
        mapping = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in mapping:
                raise yaml.constructor.ConstructorError(
                    None, None, f"found duplicate key '{key}'", key_node.start_mark
                )
            mapping.add(key)
        return super().construct_mapping(node, deep)


def parse_frontmatter(md_text: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown text.
    Uses line-by-line parsing instead of regex for reliability.
    Returns ({"__yaml_error__": msg}, text) when the YAML does not parse.
    """
    # Handle potential BOM (Byte Order Mark)
    md_text = md_text.lstrip("\ufeff")

    lines = md_text.split("\n")

    # Check for opening ---
    if not lines or lines[0].strip() != "---":
        return {}, md_text

    # Find closing ---
    yaml_end_line = None
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            yaml_end_line = i
            break

    if yaml_end_line is None:
        # No closing ---, return empty
        return {}, md_text

    raw = "\n".join(lines[1:yaml_end_line])
    body = "\n".join(lines[yaml_end_line + 1 :])

    # Fix tabs (common user error)
    if "\t" in raw:
        raw = raw.replace("\t", "  ")

    try:
        meta = yaml.load(raw, Loader=UniqueKeyLoader) or {}
    except yaml.YAMLError as e:
        return {"__yaml_error__": str(e)}, md_text

    if not isinstance(meta, dict):
        return {"__yaml_error__": "frontmatter is not a mapping"}, md_text

    return meta, body


def scrub_internal_keys(d: Any) -> Any:
    """Recursively remove keys starting with __"""
    if isinstance(d, dict):
        return {k: scrub_internal_keys(v) for k, v in d.items() if not str(k).startswith("__")}
    elif isinstance(d, list):
        return [scrub_internal_keys(v) for v in d]
    return d


def rebuild_markdown_with_frontmatter(meta: dict[str, Any], body: str) -> str:
    clean_meta = scrub_internal_keys(meta)
    yaml_text = yaml.safe_dump(
        clean_meta,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=10**9,
    )
    return f"---\n{yaml_text}---\n{body}"


# ---------- Card sides ----------

_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_SIDE_SEPARATOR_RE = re.compile(r"^---[ \t]*$", re.MULTILINE)


def get_card_sides(body: str) -> list[str]:
    """
    Split a card body into sides on `---` lines.
    Ignores --- that appear inside HTML comments; empty sides are dropped.
    """
    # Same-length mask keeps offsets valid for slicing the original body
    masked = _COMMENT_RE.sub(lambda m: "x" * len(m.group(0)), body)

    sides = []
    pos = 0
    for m in _SIDE_SEPARATOR_RE.finditer(masked):
        sides.append(body[pos : m.start()])
        pos = m.end()
    sides.append(body[pos:])

    return [s.strip() for s in sides if s.strip()]


def strip_html_comments(text: str) -> str:
    return _COMMENT_RE.sub("", text).strip()
