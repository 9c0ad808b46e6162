"""
Raw entry to artifact decoding.

Outputs are told apart by their 4-byte selector. Payloads from nodes that
still emit the legacy (V1) encoding carry no selector; they are normalized
to V2 by prefixing the selector of the kind they decode as.

Decoding is pure: the same entry always yields the same artifact or the same
``DecodeError``.
"""

from __future__ import annotations

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, to_checksum_address

from rollsync.exceptions import DecodeError
from rollsync.sync.types import Artifact, Input, Notice, PayloadEncoding, RawEntry, Report, Stream, Voucher
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.sync.decoder")

VOUCHER_SELECTOR = "237a816f"  # Voucher(address,uint256,bytes)
NOTICE_SELECTOR = "c258d6e5"  # Notice(bytes)
OUTPUT_SELECTORS = (VOUCHER_SELECTOR, NOTICE_SELECTOR)

EVM_ADVANCE_SIGNATURE = "EvmAdvance(uint256,address,address,uint256,uint256,uint256,uint256,bytes)"
EVM_ADVANCE_SELECTOR = function_signature_to_4byte_selector(EVM_ADVANCE_SIGNATURE).hex()
EVM_ADVANCE_TYPES = ["uint256", "address", "address", "uint256", "uint256", "uint256", "uint256", "bytes"]

ZERO_ADDRESS = "0x" + "00" * 20

ENCODING_MODES = ("auto", "v1", "v2")


def is_abi_bytes(body: bytes) -> bool:
    """True when ``body`` is exactly the ABI encoding of a single ``bytes`` value."""
    if len(body) < 64:
        return False
    offset = int.from_bytes(body[:32], "big")
    length = int.from_bytes(body[32:64], "big")
    padded = (length + 31) // 32 * 32
    return offset == 32 and len(body) == 64 + padded


class ArtifactDecoder:
    """
    Turn raw stream entries into artifacts.

    Args:
        encoding: ``"v1"`` or ``"v2"`` to pin the output payload generation,
            ``"auto"`` to fall back to the selector heuristic when an entry
            does not say which generation it carries
        decode_inputs: decode the EvmAdvance envelope of input blobs
    """

    def __init__(self, encoding: str = "auto", *, decode_inputs: bool = True):
        if encoding not in ENCODING_MODES:
            raise ValueError(f"encoding must be one of {', '.join(ENCODING_MODES)}, got {encoding!r}")
        self.encoding = encoding
        self.decode_inputs = decode_inputs

    def decode(self, entry: RawEntry, stream: Stream) -> Artifact:
        stream = Stream(stream)
        if stream is Stream.OUTPUTS:
            return self.decode_output(entry)
        if stream is Stream.INPUTS:
            return self.decode_input(entry)
        return self.decode_report(entry)

    # --- Outputs -------------------------------------------------------------

    def decode_output(self, entry: RawEntry) -> Voucher | Notice:
        if entry.input_index is None:
            raise DecodeError(f"Output {entry.index} has no input index", stream="outputs", index=entry.index)
        body = _hex_bytes(entry.blob, Stream.OUTPUTS, entry.index)

        if self.resolve_encoding(entry, body) is PayloadEncoding.V1:
            selector = NOTICE_SELECTOR if is_abi_bytes(body) else VOUCHER_SELECTOR
            body = bytes.fromhex(selector) + body

        if len(body) < 4:
            raise DecodeError(f"Output {entry.index} payload is too short", stream="outputs", index=entry.index)
        selector, args = body[:4].hex(), body[4:]
        payload = encode_hex(body)

        if selector == VOUCHER_SELECTOR:
            destination, value, _ = _abi(["address", "uint256", "bytes"], args, Stream.OUTPUTS, entry.index)
            if destination.lower() == ZERO_ADDRESS:
                raise DecodeError(f"Voucher {entry.index} has no destination", stream="outputs", index=entry.index)
            return Voucher(
                input_index=entry.input_index,
                output_index=entry.index,
                destination=to_checksum_address(destination),
                payload=payload,
                value=value,
            )
        if selector == NOTICE_SELECTOR:
            _abi(["bytes"], args, Stream.OUTPUTS, entry.index)
            return Notice(input_index=entry.input_index, output_index=entry.index, payload=payload)

        raise DecodeError(
            f"Output {entry.index} has unknown selector 0x{selector}", stream="outputs", index=entry.index
        )

    def resolve_encoding(self, entry: RawEntry, body: bytes) -> PayloadEncoding:
        """Explicit entry field, then the configured mode, then the selector heuristic."""
        if entry.encoding is not None:
            return entry.encoding
        if self.encoding != "auto":
            return PayloadEncoding(self.encoding)

        guessed = PayloadEncoding.V2 if body[:4].hex() in OUTPUT_SELECTORS else PayloadEncoding.V1
        logger.debug(
            f"Output {entry.input_index}:{entry.index} carries no encoding, "
            f"guessed {guessed.value} from prefix 0x{body[:4].hex()}"
        )
        return guessed

    # --- Inputs and reports --------------------------------------------------

    def decode_input(self, entry: RawEntry) -> Input:
        body = _hex_bytes(entry.blob, Stream.INPUTS, entry.index)
        if not self.decode_inputs or body[:4].hex() != EVM_ADVANCE_SELECTOR:
            return Input(index=entry.index, blob=entry.blob)

        chain_id, app_contract, msg_sender, block_number, block_timestamp, prev_randao, _, payload = _abi(
            EVM_ADVANCE_TYPES, body[4:], Stream.INPUTS, entry.index
        )
        return Input(
            index=entry.index,
            blob=entry.blob,
            chain_id=chain_id,
            app_contract=to_checksum_address(app_contract),
            msg_sender=to_checksum_address(msg_sender),
            block_number=block_number,
            block_timestamp=block_timestamp,
            prev_randao=str(prev_randao),
            payload=encode_hex(payload),
        )

    def decode_report(self, entry: RawEntry) -> Report:
        if entry.input_index is None:
            raise DecodeError(f"Report {entry.index} has no input index", stream="reports", index=entry.index)
        return Report(input_index=entry.input_index, index=entry.index, blob=entry.blob)


def _hex_bytes(blob: str, stream: Stream, index: int) -> bytes:
    try:
        return decode_hex(blob)
    except (ValueError, TypeError) as e:
        raise DecodeError(f"Invalid hex blob in {stream.value} {index}", stream=stream.value, index=index, cause=e)


def _abi(types: list[str], data: bytes, stream: Stream, index: int) -> tuple:
    try:
        return abi_decode(types, data)
    except (DecodingError, ValueError, OverflowError) as e:
        raise DecodeError(
            f"ABI decoding of {stream.value} {index} as ({','.join(types)}) failed: {e}",
            stream=stream.value,
            index=index,
            cause=e,
        )
