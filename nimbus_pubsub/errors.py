"""
Connector error taxonomy.

Every error a connector reports through the host error channel is one of
these. None of them is raised into the event loop.
"""


class ConnectorError(Exception):
    """Base class for connector errors"""
    pass


class ConfigurationError(ConnectorError, ValueError):
    """Node configuration is unusable (missing topic, no identity, bad option)"""
    pass


class TopicResolutionError(ConnectorError):
    """Topic handle could not be acquired; fatal for the current activation"""
    pass


class SubscriptionError(ConnectorError):
    """Subscription could not be resolved, or its listener failed"""
    pass


class UnsupportedConfigurationError(ConnectorError):
    """Configuration asks for a feature the connector does not implement"""
    pass


class PublishError(ConnectorError):
    """A single message could not be published"""
    pass


class SubscriptionDeleteError(ConnectorError):
    """Auto-created subscription could not be removed on close"""
    pass


class CommandError(ConnectorError):
    """A single device command could not be sent"""
    pass


def as_configuration_error(error: ValueError) -> ConfigurationError:
    """Wrap a ValueError raised while building a node (e.g. a malformed key)."""
    if isinstance(error, ConfigurationError):
        return error
    return ConfigurationError(f"Invalid configuration: {error}")
