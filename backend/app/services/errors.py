"""Error taxonomy shared by the messaging services."""


class MessagingError(RuntimeError):
    """Base class for support-chat failures."""


class ValidationError(MessagingError):
    """Raised for malformed input such as an empty message or unknown conversation."""


class StorageError(MessagingError):
    """Raised when the underlying database operation fails."""


class ChannelDeliveryFailure(MessagingError):
    """Raised inside the realtime channel when a push cannot reach a peer."""


class AuthenticationError(MessagingError):
    """Raised when a caller token cannot be verified."""
