"""
paper-manager — import PDF papers into a local library.

Extracts bibliographic metadata (title, authors, publication, year, summary)
with an LLM, either a cloud chat-completion API or a bundled local model,
and stores it in a SQLite library for browsing and search.
"""

__version__ = "0.1.0"
