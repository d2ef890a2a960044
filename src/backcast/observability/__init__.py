from .logging import bind_poll_context, configure_logging, get_logger

__all__ = ["bind_poll_context", "configure_logging", "get_logger"]
