"""Command line interface for formtree."""
