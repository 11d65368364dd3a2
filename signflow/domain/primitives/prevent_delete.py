"""Primitive: prevent deletion of append-only records.

Audit events, outbox records and consent records are never deleted once
written. Any attempt to delete one using this mixin raises
AppendOnlyViolationError.

Usage:
    @dataclass(frozen=True)
    class MyRecord(DeletePreventionMixin):
        ...

    record.delete()  # Raises AppendOnlyViolationError
"""

from signflow.domain.errors.audit import AppendOnlyViolationError


class DeletePreventionMixin:
    """Mixin that prevents deletion of append-only records.

    Provides a `delete()` method that always raises, making the forbidden
    operation visible rather than silent.

    Example:
        >>> class Record(DeletePreventionMixin):
        ...     pass
        >>> Record().delete()  # doctest: +IGNORE_EXCEPTION_DETAIL
        Traceback (most recent call last):
            ...
        AppendOnlyViolationError: Deletion prohibited...
    """

    def delete(self) -> None:
        """Raise AppendOnlyViolationError - deletion is prohibited.

        Raises:
            AppendOnlyViolationError: Always.
        """
        raise AppendOnlyViolationError(
            f"Deletion prohibited - {type(self).__name__} records are append-only"
        )
