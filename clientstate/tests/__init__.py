"""Client state layer tests."""
