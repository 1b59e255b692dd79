"""Log collection from task sockets and routing of log envelopes to sinks."""

__version__ = "0.1.0"