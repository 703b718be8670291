"""PigeonPost: webhook core for a contact and email marketing back office."""

__version__ = "0.1.0"
