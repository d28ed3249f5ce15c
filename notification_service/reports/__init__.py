"""Printable academic reports: metric composition, markup, headless PDF export."""
