"""uilocator - UI hierarchy acquisition and element resolution for Android test automation."""

__version__ = "0.1.0"
