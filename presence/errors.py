"""Error taxonomy for the presence tracker."""


class PresenceError(Exception):
    """Base class for all presence tracker errors."""


class AuthorityError(PresenceError):
    """The game server's admin protocol could not answer.

    Transient by nature: absorbed by the failure governor, never surfaced as
    a crash of a periodic task.
    """


class AuthorityUnreachable(AuthorityError):
    """Connection to the authority could not be established."""


class AuthorityAuthFailed(AuthorityError):
    """The authority rejected our credentials."""


class AuthorityTimeout(AuthorityError):
    """The authority did not answer within the configured timeout."""


class AuthorityProtocolError(AuthorityError):
    """The authority answered with something we could not parse."""


class IdentityResolutionFailed(PresenceError):
    """Remote identity lookup failed; callers fall back to a derived identity."""


class StoreUnavailable(PresenceError):
    """A persistence write failed after all retries."""


class ConfigurationError(PresenceError, ValueError):
    """Invalid runtime configuration value."""
