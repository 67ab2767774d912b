"""Import, export and link handling."""
