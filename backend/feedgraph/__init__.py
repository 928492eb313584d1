"""Social relationship and visibility engine."""
