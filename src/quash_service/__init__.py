"""Quash Board Service - task marketplace with offers and hiring."""

__version__ = "0.1.0"
