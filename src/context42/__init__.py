"""Discover the code style a team already follows and write it down."""

__version__ = "0.3.3"
