"""Domain records and exceptions."""
