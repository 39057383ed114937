from collections.abc import Iterator
from pathlib import Path


def iter_markdown_files(root: Path) -> Iterator[Path]:
    """Yield Markdown files under `root` in path order, skipping hidden directories."""
    if root.is_file():
        if root.suffix.lower() == ".md":
            yield root
        return

    for path in sorted(root.rglob("*.md")):
        rel_parts = path.relative_to(root).parts
        if any(part.startswith(".") for part in rel_parts[:-1]):
            continue
        yield path
