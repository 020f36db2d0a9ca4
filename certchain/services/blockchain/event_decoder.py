"""
Event Decoder.

Extracts contract events from transaction receipt logs without a contract
round trip: topic0 is matched against the event signature hash, indexed
arguments are read from the remaining topics and the rest from the data
section.
"""

from typing import Any

from eth_abi import decode
from eth_utils import event_abi_to_log_topic, to_checksum_address
from hexbytes import HexBytes
from loguru import logger

from certchain.utils.exceptions import EventNotFoundError, MintEventNotFound

from .abi import ContractProfile


class EventDecoder:
    """Decodes the bound contract's events from receipt logs."""

    def __init__(
        self,
        abi: list[dict[str, Any]],
        contract_address: str,
        issued_event: str = "CertificateMinted",
        revoked_event: str = "CertificateRevoked",
    ):
        """
        Initialize event decoder.

        Args:
            abi: Contract ABI
            contract_address: Only logs emitted by this address are decoded
            issued_event: Name of the issuance event
            revoked_event: Name of the revocation event
        """
        self.contract_address = contract_address.lower()
        self.issued_event = issued_event
        self.revoked_event = revoked_event
        self._events: dict[str, dict[str, Any]] = {}
        self._topics: dict[str, bytes] = {}
        for entry in abi:
            if entry.get("type") == "event" and not entry.get("anonymous"):
                self._events[entry["name"]] = entry
                self._topics[entry["name"]] = bytes(event_abi_to_log_topic(entry))

    @classmethod
    def for_profile(cls, profile: ContractProfile, contract_address: str) -> "EventDecoder":
        """Build a decoder for a contract profile."""
        return cls(
            profile.abi,
            contract_address,
            issued_event=profile.issued_event,
            revoked_event=profile.revoked_event,
        )

    def topic(self, event_name: str) -> bytes:
        """Signature hash (topic0) of an event."""
        try:
            return self._topics[event_name]
        except KeyError as e:
            raise EventNotFoundError(event_name) from e

    def decode(self, logs: list[Any], event_name: str) -> list[dict[str, Any]]:
        """
        Decode every log of the given event emitted by the bound contract.

        Args:
            logs: Receipt logs
            event_name: Event name from the ABI

        Returns:
            List of {"event", "args", "logIndex"} in log order
        """
        event_abi = self._events.get(event_name)
        if event_abi is None:
            raise EventNotFoundError(event_name)
        signature = self._topics[event_name]

        indexed = [i for i in event_abi["inputs"] if i.get("indexed")]
        non_indexed = [i for i in event_abi["inputs"] if not i.get("indexed")]

        decoded_events = []
        for log in logs:
            address = str(log.get("address", "")).lower()
            if address != self.contract_address:
                continue

            topics = [bytes(HexBytes(t)) for t in log.get("topics", [])]
            if not topics or topics[0] != signature:
                continue
            if len(topics) - 1 != len(indexed):
                logger.warning(
                    f"Skipping {event_name} log with {len(topics) - 1} indexed "
                    f"topics (expected {len(indexed)})"
                )
                continue

            args: dict[str, Any] = {}
            for param, topic in zip(indexed, topics[1:]):
                args[param["name"]] = self._decode_topic(param["type"], topic)

            if non_indexed:
                values = decode(
                    [i["type"] for i in non_indexed],
                    bytes(HexBytes(log.get("data", b""))),
                )
                for param, value in zip(non_indexed, values):
                    if param["type"] == "address":
                        value = to_checksum_address(value)
                    args[param["name"]] = value

            decoded_events.append(
                {
                    "event": event_name,
                    "args": args,
                    "logIndex": log.get("logIndex"),
                }
            )
        return decoded_events

    @staticmethod
    def _decode_topic(abi_type: str, topic: bytes) -> Any:
        # Dynamic indexed values are stored as their keccak hash
        if abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("tuple"):
            return HexBytes(topic)
        (value,) = decode([abi_type], topic)
        if abi_type == "address":
            return to_checksum_address(value)
        return value

    def issued_token_ids(self, logs: list[Any], tx_hash: str | None = None) -> list[int]:
        """
        Token IDs from the issuance event.

        Raises:
            MintEventNotFound: If the receipt carries no issuance event
        """
        events = self.decode(logs, self.issued_event)
        if not events:
            logger.error(f"{self.issued_event} event missing from receipt {tx_hash}")
            raise MintEventNotFound(self.issued_event, tx_hash)
        return [int(e["args"]["tokenId"]) for e in events]

    def revoked_token_ids(self, logs: list[Any], tx_hash: str | None = None) -> list[int]:
        """
        Token IDs from the revocation event.

        Raises:
            EventNotFoundError: If the receipt carries no revocation event
        """
        events = self.decode(logs, self.revoked_event)
        if not events:
            logger.error(f"{self.revoked_event} event missing from receipt {tx_hash}")
            raise EventNotFoundError(self.revoked_event, tx_hash)
        return [int(e["args"]["tokenId"]) for e in events]
