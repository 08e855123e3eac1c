"""Bolt protocol building blocks: PackStream, hydration, outgoing messages, pooling and retries."""

__version__ = "0.1.0"