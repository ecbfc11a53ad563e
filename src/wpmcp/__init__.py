"""wpmcp - WordPress content over a tool-invocation protocol.

The protocol core: request dispatcher, cursor pagination, notification log
and consent tokens, plus the FastAPI app that serves them.
"""

__version__ = "0.1.0"
