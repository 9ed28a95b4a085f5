"""Scheduled jobs: monthly iuran generation and jatuh tempo reminders."""
