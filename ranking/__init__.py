"""Dedup, clustering and ranking of section candidates."""
