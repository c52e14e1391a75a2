"""
Transaction decoders.

A decoder turns a raw blockchain transaction into a ``ParsedIntent`` when
the transaction carries a chainloader directive, and returns None for the
(many) transactions on a shared chain that do not.
"""
import logging
from typing import Any, Mapping, Optional, Protocol, Union

from pydantic import ValidationError

from .models import ParsedIntent, RawTransaction, TxType

logger = logging.getLogger(__name__)

# Type byte following the prefix in the embedded data
TX_TYPE_CODES = {
    TxType.PUBLIC: 1,
    TxType.PERMISSION: 2,
}
_CODE_TO_TX_TYPE = {code: tx_type for tx_type, code in TX_TYPE_CODES.items()}

RawTransactionLike = Union[RawTransaction, Mapping[str, Any]]


class TxDecoder(Protocol):
    """Protocol for transaction decoders"""

    def parse(self, raw: Any, network: str, prefix: str) -> Optional[ParsedIntent]:
        """Decode raw into an intent, or return None if it carries none"""
        ...

    def validate(self, candidate: Any) -> bool:
        """Return True if candidate is an already-parsed intent"""
        ...


def encode_tx_data(prefix: str, tx_type: TxType, payload: bytes) -> bytes:
    """
    Build the data a publisher embeds in a transaction.

    Args:
        prefix: Application prefix shared by publisher and loader
        tx_type: Kind of directive
        payload: Directive payload (keeper key, or sealed permission key)

    Returns:
        prefix + type byte + payload

    Raises:
        ValueError: If the payload is empty
    """
    if not payload:
        raise ValueError("Payload must not be empty")
    return prefix.encode("ascii") + bytes([TX_TYPE_CODES[TxType(tx_type)]]) + payload


class OpReturnDecoder:
    """
    Decoder for directives embedded as ``prefix + type byte + payload``.

    Transactions from another network, without embedded data, with a
    different prefix or an unknown type byte are not ours and decode to None.
    """

    def parse(self, raw: RawTransactionLike, network: str, prefix: str) -> Optional[ParsedIntent]:
        """
        Decode a raw transaction.

        Args:
            raw: RawTransaction or a mapping accepted by RawTransaction
            network: Network the loader reads from
            prefix: Application prefix

        Returns:
            ParsedIntent, or None if the transaction carries no directive
        """
        if not isinstance(raw, RawTransaction):
            try:
                raw = RawTransaction.model_validate(raw)
            except ValidationError as e:
                logger.debug(f"Not a raw transaction: {e.error_count()} validation errors")
                return None

        if raw.network != network:
            return None

        data = raw.data
        marker = prefix.encode("ascii")
        if not data or not data.startswith(marker) or len(data) <= len(marker) + 1:
            return None

        tx_type = _CODE_TO_TX_TYPE.get(data[len(marker)])
        if tx_type is None:
            logger.debug(f"Unknown tx type byte {data[len(marker)]} in {raw.tx_id}")
            return None

        return ParsedIntent(
            tx_id=raw.tx_id,
            tx_type=tx_type,
            from_addresses=list(raw.from_addresses),
            to_addresses=list(raw.to_addresses),
            payload=data[len(marker) + 1:],
        )

    def validate(self, candidate: Any) -> bool:
        if isinstance(candidate, ParsedIntent):
            return True
        # Raw transactions never carry a tx type, so only intents get this far
        if isinstance(candidate, Mapping) and ("txType" in candidate or "tx_type" in candidate):
            try:
                ParsedIntent.model_validate(candidate)
                return True
            except ValidationError:
                return False
        return False
