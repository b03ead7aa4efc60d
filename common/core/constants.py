from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class NotificationProviderType(str, Enum):
    """Where billing notifications are delivered."""

    LOG = "log"
    RABBITMQ = "rabbitmq"
