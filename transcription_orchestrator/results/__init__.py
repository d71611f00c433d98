"""Recognition result collection and normalization."""
