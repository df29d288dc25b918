"""Reflection cycle — gather activity, save the agent's structured review."""
