"""Command line interface for paysync."""
