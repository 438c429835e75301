"""Deck generation job queue: broker adapter, status store, submitter and worker."""
