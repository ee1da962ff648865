"""Command line interface for inspecting parameter buffer layouts."""
