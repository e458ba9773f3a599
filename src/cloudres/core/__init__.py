"""Core definitions shared across cloudres modules."""
