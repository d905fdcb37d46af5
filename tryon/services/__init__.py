"""Domain services behind the try-on pipeline."""
