"""
backend/footbet/errors.py

Purpose:
    Error taxonomy for prediction generation runs. Every fatal failure of a
    run surfaces as one of these, with a message shown verbatim to the
    operator who triggered it.
"""


class FootbetError(Exception):
    """Base class for domain failures surfaced to API callers."""

    status_code = 500


class ConfigurationError(FootbetError):
    """A required credential or setting is absent."""

    status_code = 503


class UpstreamError(FootbetError):
    """The fixture API answered with a non-success status or was unreachable."""

    status_code = 502

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class GenerationError(FootbetError):
    """The generative service returned no usable output."""

    status_code = 502


class NoFixturesError(GenerationError):
    """No fixtures were available to generate from."""


class ValidationError(FootbetError):
    """Structured output violates a hard invariant; nothing is persisted."""

    status_code = 422

    def __init__(self, message: str, *, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class GenerationInProgressError(FootbetError):
    """Another run holds the advisory lock for the same (date, ruleset)."""

    status_code = 409


class CategoryNotFoundError(FootbetError):
    status_code = 404


class DuplicatePaymentError(FootbetError):
    """The same transaction id was already submitted for this payment method."""

    status_code = 409


class PaymentNotFoundError(FootbetError):
    status_code = 404


class UserNotFoundError(FootbetError):
    status_code = 404
