"""External admin credentials and their synchronisation with profiles."""
