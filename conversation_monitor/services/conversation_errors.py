"""Error taxonomy raised by the conversation monitoring services.

Subclassing the builtin ``LookupError`` / ``ValueError`` keeps the existing
router convention working: lookups map to 404, bad input to 400.
"""


class ConversationError(Exception):
    """Base class for conversation monitoring failures."""


class ConversationNotFoundError(ConversationError, LookupError):
    """Unknown conversation or brand. Raised before any write happens."""


class ConversationValidationError(ConversationError, ValueError):
    """Rejected input: empty text, over-long text, unknown enum value."""


class ConversationInactiveError(ConversationError):
    """A turn was sent to a deactivated conversation under the reject policy."""


class ConversationStoreError(ConversationError):
    """The store could not complete a primary write or read."""
