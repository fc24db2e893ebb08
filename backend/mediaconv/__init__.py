"""Local batch media conversion service."""
