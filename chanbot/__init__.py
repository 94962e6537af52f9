"""chanbot: an IRC bot with pluggable commands and flood-controlled replies."""

__version__ = "1.0.0"
