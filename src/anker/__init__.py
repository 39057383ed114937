"""anker: FSRS scheduling and review sessions for Markdown flashcard vaults."""

__version__ = "0.4.0"
