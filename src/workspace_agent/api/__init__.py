"""HTTP surface for the presentation layer."""
