"""Journal and classification caches shared by the import components."""
