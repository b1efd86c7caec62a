"""regenconf - cooperative configuration regeneration for self-hosted servers."""

__version__ = "0.1.0"
