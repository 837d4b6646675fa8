"""Render library records as text for the CLI.

No file I/O is performed here; ``cli.py`` prints the returned strings.
"""

from collections.abc import Sequence

from papermanager.models import PaperRecord


def render_paper(record: PaperRecord) -> str:
    """Render one paper as a markdown detail view."""
    lines = [
        f"# {record.title or 'Untitled'}",
        "",
        f"- **Authors:** {record.authors or 'Unknown authors'}",
        f"- **Publication:** {record.publication or 'Unknown'}",
        f"- **Year:** {record.year if record.year else 'Unknown'}",
        f"- **Read:** {'yes' if record.read_status else 'no'}",
        f"- **File:** {record.file_path}",
        f"- **ID:** {record.id}",
        "",
        "## Summary",
        "",
        record.summary or "No summary available",
    ]
    return "\n".join(lines) + "\n"


def render_paper_list(records: Sequence[PaperRecord]) -> str:
    """Render one line per paper: id prefix, read marker, year, title, authors."""
    if not records:
        return "No papers in library.\n"
    lines = []
    for record in records:
        marker = "x" if record.read_status else " "
        year = str(record.year) if record.year else "----"
        title = record.title or "Untitled"
        authors = record.authors or "Unknown authors"
        lines.append(f"{record.id[:8]}  [{marker}] {year}  {title} — {authors}")
    return "\n".join(lines) + "\n"
