"""
Exception classes for versualizer.

This module defines all custom exceptions used throughout the application.
Each exception carries a human-readable message plus an optional details
dictionary, so callers can log context without parsing message strings.

Exception Hierarchy:
    VersualizerError (base)
        ConfigError - Configuration file issues (fatal at startup)
        CacheError - Lyrics cache (SQLite) issues
        HttpError - Transport failures after retries were exhausted
        LyricsProviderError - A single lyrics provider failed
            LyricsNotFoundError - Provider searched everywhere, found nothing
        AuthError - Token acquisition / refresh failures
            ServerTimeError - Could not read the server clock
            SecretKeyError - Could not fetch or decode the TOTP secret
            TokenFetchError - Token endpoint rejected the exchange
            AnonymousTokenError - Session cookie is invalid (re-auth needed)
        PlaybackError - Playback source could not produce a snapshot
"""


class VersualizerError(Exception):
    """
    Base exception for all versualizer errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all versualizer errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Dictionary with additional context (e.g., track info, URLs).

    Example:
        try:
            await provider.fetch(query)
        except VersualizerError as e:
            logger.warning(f"Provider failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'url': URL that caused the error
                     - 'status': HTTP status code
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(VersualizerError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution. It is
    never retried silently.

    Common causes:
        - config.yaml has invalid YAML syntax
        - Required fields missing (spotify.client_id, spotify.client_secret)
        - Invalid field values (unknown provider name, negative interval)

    Example:
        raise ConfigError(
            "Unknown lyrics provider 'genius'",
            details={'field': 'lyrics.providers', 'value': 'genius'}
        )
    """
    pass


class CacheError(VersualizerError):
    """
    Raised when there's an issue with the lyrics cache database.

    This is a NON-CRITICAL error for the fetch pipeline: caching is
    best-effort, so a failed store must never prevent freshly fetched
    lyrics from being published.

    Common causes:
        - Database file locked or corrupted
        - Permission denied when writing
        - Attempt to store a NotFound result (negative results are never cached)
    """
    pass


class HttpError(VersualizerError):
    """
    Raised when an HTTP request failed after all transport-level retries.

    Attributes:
        status: HTTP status of the last attempt, or None if no response was received.
        url: The requested URL.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status: int | None = None,
        url: str = ""
    ) -> None:
        super().__init__(message, details)
        self.status = status
        self.url = url


class LyricsProviderError(VersualizerError):
    """
    Raised when a lyrics provider cannot answer a query.

    The fetch orchestrator logs these and moves on to the next provider;
    they are never fatal to the fetch loop.

    Attributes:
        provider: Name of the provider that failed (e.g., 'lrclib').
    """

    def __init__(self, message: str, details: dict | None = None, provider: str = "") -> None:
        super().__init__(message, details)
        self.provider = provider


class LyricsNotFoundError(LyricsProviderError):
    """Raised when a provider exhausted every search tier without a usable candidate."""
    pass


class AuthError(VersualizerError):
    """
    Raised when an access token cannot be obtained.

    Attributes:
        requires_reauth: True when retrying cannot help and the user must
                         supply new credentials (e.g., an expired session cookie).
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        requires_reauth: bool = False
    ) -> None:
        super().__init__(message, details)
        self.requires_reauth = requires_reauth


class ServerTimeError(AuthError):
    """Raised when the authoritative server time could not be read."""
    pass


class SecretKeyError(AuthError):
    """Raised when the TOTP secret dictionary could not be fetched or decoded."""
    pass


class TokenFetchError(AuthError):
    """Raised when the token endpoint refused the TOTP exchange."""
    pass


class AnonymousTokenError(AuthError):
    """
    Raised when the token endpoint hands out an anonymous token.

    This means the long-lived sp_dc session cookie is invalid or expired.
    No amount of retrying fixes it, so the error is surfaced distinctly
    from ordinary network failures.
    """

    def __init__(self, message: str = "sp_dc cookie is invalid or expired", details: dict | None = None) -> None:
        super().__init__(message, details, requires_reauth=True)


class PlaybackError(VersualizerError):
    """
    Raised when a playback source fails to produce a snapshot.

    The poller catches these, counts consecutive failures and backs off.

    Attributes:
        is_auth_error: True if the failure was caused by expired credentials.
    """

    def __init__(self, message: str, details: dict | None = None, is_auth_error: bool = False) -> None:
        super().__init__(message, details)
        self.is_auth_error = is_auth_error
