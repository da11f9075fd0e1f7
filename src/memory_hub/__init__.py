"""memory-hub: semantic memory store exposed over a line-delimited tool protocol."""

__version__ = "2.0.0"
