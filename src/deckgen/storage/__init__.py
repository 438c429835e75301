"""SQLite persistence for job statuses and generated flashcards."""
