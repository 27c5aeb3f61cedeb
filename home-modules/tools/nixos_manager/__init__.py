"""NixOS command dispatcher - a small vocabulary over nixos-rebuild, nix and nix-env.

This package provides:
- Rebuild / update / garbage-collect shortcuts for the system flake
- Store-link swapping for editing generated files in place
- Generation listing, diffing and removal
"""

__version__ = "0.2.0"
__author__ = "nixos-config contributors"
__license__ = "MIT"

__all__ = ["__version__", "__author__", "__license__"]
