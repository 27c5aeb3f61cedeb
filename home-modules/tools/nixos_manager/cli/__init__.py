"""Command-line interface for the nixos dispatcher."""
