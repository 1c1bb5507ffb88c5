"""Administrator console operations."""
