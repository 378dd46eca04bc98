"""Brightspots & Whitespots survey dashboard."""
