"""Errors raised across the discussion engine boundary."""


class ConfigurationError(ValueError):
    """Raised before a session starts when its inputs cannot be used.

    Empty topic, empty agent selection, unknown agent ids (under strict
    validation) and unknown model ids all end up here. No LLM call has been
    made when this is raised.
    """
