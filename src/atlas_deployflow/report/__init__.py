"""Relatórios derivados do Manifest (Markdown)."""
