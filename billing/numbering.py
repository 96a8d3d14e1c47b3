import logging

from django.conf import settings
from django.db import IntegrityError, transaction

from common.exceptions import StateConflict

logger = logging.getLogger(__name__)


def fiscal_year_label(on_date):
    """April-to-March fiscal year, e.g. 2024-25 for any date from 1 Apr 2024 to 31 Mar 2025."""
    start = on_date.year if on_date.month >= 4 else on_date.year - 1
    return f"{start}-{(start + 1) % 100:02d}"


def invoice_prefix(on_date):
    return f"{settings.BILLING_INVOICE_PREFIX}{fiscal_year_label(on_date)}/"


def credit_note_prefix():
    return settings.BILLING_CREDIT_NOTE_PREFIX


def last_document_number(model, field, prefix):
    return (
        model.objects.filter(**{f"{field}__startswith": prefix})
        .order_by(f"-{field}")
        .values_list(field, flat=True)
        .first()
    )


def next_sequence(prefix, last_number):
    if not last_number:
        return 1
    trailing = last_number[len(prefix):].split("/")[-1]
    try:
        return int(trailing) + 1
    except ValueError:
        return 1


def format_document_number(prefix, sequence):
    return f"{prefix}{sequence:0{settings.BILLING_SEQUENCE_PADDING}d}"


def next_document_number(model, field, prefix):
    return format_document_number(prefix, next_sequence(prefix, last_document_number(model, field, prefix)))


def allocate_document_number(build, *, model, field, prefix, conflict_message):
    """Call ``build(number)`` with the next free number for ``prefix``.

    Each attempt runs in its own savepoint so a unique violation on the
    number rolls back only the rows ``build`` wrote; the maximum is then
    re-read. Raises StateConflict once the configured attempts are used up.
    """
    attempts = settings.BILLING_NUMBER_ALLOCATION_ATTEMPTS
    floor = 0
    for attempt in range(1, attempts + 1):
        sequence = max(next_sequence(prefix, last_document_number(model, field, prefix)), floor + 1)
        number = format_document_number(prefix, sequence)
        try:
            with transaction.atomic():
                return build(number)
        except IntegrityError:
            if not model.objects.filter(**{field: number}).exists():
                raise
            logger.warning(
                "Document number taken, retrying",
                extra={"document_number": number, "attempt": attempt},
            )
            floor = sequence
    raise StateConflict(conflict_message)
