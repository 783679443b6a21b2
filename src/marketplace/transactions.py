"""Command execution with the store's failure modes folded into the taxonomy.

Domain errors pass through untouched. Anything else Protean raises while the
unit of work runs or commits (a stale aggregate version, a failed flush) is
reported as ``TransactionAborted``; the unit of work has already rolled back
by then. Retrying is left to the caller.
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ProteanException, ValidationError
from protean.utils.globals import current_domain

from marketplace.errors import GatewayError, TransactionAborted, first_message

logger = structlog.get_logger(__name__)

_DOMAIN_ERRORS = (ValidationError, ObjectNotFoundError, TransactionAborted, GatewayError)


def execute(command):
    """Process ``command`` synchronously and return the handler's result."""
    try:
        return current_domain.process(command, asynchronous=False)
    except _DOMAIN_ERRORS:
        raise
    except ProteanException as exc:
        logger.warning(
            "Transaction aborted",
            command=command.__class__.__name__,
            error=exc.__class__.__name__,
            detail=first_message(exc),
        )
        raise TransactionAborted(f"{command.__class__.__name__} could not be committed: {first_message(exc)}") from exc
