"""
Transaction parsing for a batch.
"""
import logging
from typing import Any, List, Sequence, Tuple

from pydantic import ValidationError

from .decoder import TxDecoder
from .diagnostics import Diagnostic, DropReason
from .exceptions import TxDecodeError
from .models import ParsedIntent

logger = logging.getLogger(__name__)


def parse_transaction(tx: Any, index: int, decoder: TxDecoder, network: str, prefix: str) -> ParsedIntent:
    """
    Parse one transaction, or pass an already-parsed intent through.

    Args:
        tx: Raw transaction or parsed intent
        index: Position of tx in its batch
        decoder: Transaction decoder
        network: Network name
        prefix: Application prefix

    Returns:
        The intent, stamped with index

    Raises:
        TxDecodeError: If tx carries no intent
    """
    if decoder.validate(tx):
        parsed = tx if isinstance(tx, ParsedIntent) else ParsedIntent.model_validate(tx)
    else:
        try:
            parsed = decoder.parse(tx, network, prefix)
        except (TxDecodeError, ValueError) as e:
            raise TxDecodeError(f"Failed to decode transaction: {e}") from e
        if parsed is None:
            raise TxDecodeError("Transaction carries no intent")

    return parsed.model_copy(update={"original_index": index})


def parse_transactions(
    txs: Sequence[Any],
    decoder: TxDecoder,
    network: str,
    prefix: str
) -> Tuple[List[ParsedIntent], List[Diagnostic]]:
    """
    Parse a batch of transactions.

    Transactions that do not parse are not errors (most transactions on a
    shared chain are not ours); they are left out and reported as diagnostics.

    Args:
        txs: Raw transactions and/or parsed intents
        decoder: Transaction decoder
        network: Network name
        prefix: Application prefix

    Returns:
        Tuple of (parsed intents in input order, diagnostics for dropped items)
    """
    parsed: List[ParsedIntent] = []
    dropped: List[Diagnostic] = []
    for index, tx in enumerate(txs):
        try:
            parsed.append(parse_transaction(tx, index, decoder, network, prefix))
        except (TxDecodeError, ValidationError) as e:
            dropped.append(Diagnostic(original_index=index, reason=DropReason.UNPARSEABLE, detail=str(e)))
    return parsed, dropped
