"""End-to-end workflows composed from the application stages."""
