"""
Exception types shared by the services and the session machine.
"""


class MirrorError(Exception):
    """Base class for everything the API maps to a client error."""


class InvalidTransition(MirrorError):
    """The requested action is not legal in the session's current state."""


class SessionBusy(InvalidTransition):
    """A generation or progress check is already in flight for this session."""


class UnknownStyle(MirrorError):
    """The chosen mood is not in the catalog for the session's mode."""


class GenerationError(MirrorError):
    """A look/text generation call failed or returned nothing usable.

    The message is user-facing (e.g. safety rejections, "try another angle").
    """


class CheckoutError(MirrorError):
    """Checkout could not be created (bad method, billing off, provider error)."""
