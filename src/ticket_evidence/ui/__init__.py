"""Command-line surface for ticket-evidence."""
