"""Cinema management: protocol, models, server, client, console menu and event log."""

__version__ = "0.1.0"
__all__ = ["client", "logger", "menu", "models", "protocol", "server"]