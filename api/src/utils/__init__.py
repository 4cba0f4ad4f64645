"""Pure helpers for query strings, merging and image sizing."""
