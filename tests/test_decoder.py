"""
Tests for raw entry decoding (vouchers, notices, inputs, reports).
"""

import logging

import pytest
from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address

from rollsync.exceptions import DecodeError
from rollsync.sync.decoder import (
    EVM_ADVANCE_SELECTOR,
    EVM_ADVANCE_TYPES,
    NOTICE_SELECTOR,
    VOUCHER_SELECTOR,
    ArtifactDecoder,
    is_abi_bytes,
)
from rollsync.sync.types import CompletionStatus, Input, Notice, PayloadEncoding, RawEntry, Report, Stream, Voucher

DESTINATION = "0xfafafafafafafafafafafafafafafafafafafafa"
SENDER = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
APP = "0xab7528bb862fb57e8a2bcd567a2e929a0be56a5e"


def voucher_body(destination=DESTINATION, value=0, payload=b"\x01\x02\x03"):
    return abi_encode(["address", "uint256", "bytes"], [destination, value, payload])


def notice_body(payload=b"hello"):
    return abi_encode(["bytes"], [payload])


def output(blob: bytes | str, index=1, input_index=1, encoding=None) -> RawEntry:
    if isinstance(blob, bytes):
        blob = "0x" + blob.hex()
    return RawEntry(cursor=f"c{index}", index=index, blob=blob, input_index=input_index, encoding=encoding)


class TestVoucherDecoding:
    def test_v2_voucher(self):
        body = bytes.fromhex(VOUCHER_SELECTOR) + voucher_body(value=10**18)
        artifact = ArtifactDecoder().decode(output(body, index=3, input_index=2), Stream.OUTPUTS)

        assert isinstance(artifact, Voucher)
        assert artifact.input_index == 2
        assert artifact.output_index == 3
        assert artifact.destination == to_checksum_address(DESTINATION)
        assert artifact.value == 10**18
        assert artifact.payload == "0x" + body.hex()
        assert artifact.executed is False

    def test_legacy_voucher_is_prefixed_with_selector(self):
        body = voucher_body()
        artifact = ArtifactDecoder().decode(output(body), Stream.OUTPUTS)

        assert isinstance(artifact, Voucher)
        assert artifact.payload == f"0x{VOUCHER_SELECTOR}{body.hex()}"
        assert artifact.destination == to_checksum_address(DESTINATION)
        assert artifact.key == (1, 1)

    def test_value_beyond_64_bits(self):
        artifact = ArtifactDecoder().decode(output(voucher_body(value=2**200)), Stream.OUTPUTS)
        assert artifact.value == 2**200

    def test_truncated_voucher_raises(self):
        blob = "0x" + VOUCHER_SELECTOR + "00" * 10
        with pytest.raises(DecodeError) as exc_info:
            ArtifactDecoder().decode(output(blob, index=7), Stream.OUTPUTS)
        assert exc_info.value.stream == "outputs"
        assert exc_info.value.index == 7
        assert exc_info.value.retryable is False

    def test_zero_destination_raises(self):
        body = bytes.fromhex(VOUCHER_SELECTOR) + voucher_body(destination="0x" + "00" * 20)
        with pytest.raises(DecodeError, match="no destination") as exc_info:
            ArtifactDecoder().decode(output(body, index=8), Stream.OUTPUTS)
        assert exc_info.value.index == 8


class TestNoticeDecoding:
    def test_v2_notice(self):
        body = bytes.fromhex(NOTICE_SELECTOR) + notice_body()
        artifact = ArtifactDecoder().decode(output(body), Stream.OUTPUTS)

        assert isinstance(artifact, Notice)
        assert artifact.payload == "0x" + body.hex()

    def test_legacy_notice_is_prefixed_with_selector(self):
        body = notice_body(b"a longer notice payload that spans more than one word")
        artifact = ArtifactDecoder().decode(output(body, index=4, input_index=9), Stream.OUTPUTS)

        assert isinstance(artifact, Notice)
        assert artifact.payload == f"0x{NOTICE_SELECTOR}{body.hex()}"
        assert artifact.key == (9, 4)


class TestEncodingResolution:
    def test_explicit_entry_encoding_wins_over_mode(self):
        body = voucher_body()
        decoder = ArtifactDecoder("v2")
        artifact = decoder.decode(output(body, encoding=PayloadEncoding.V1), Stream.OUTPUTS)
        assert artifact.payload.startswith("0x" + VOUCHER_SELECTOR)

    def test_pinned_v2_rejects_legacy_body(self):
        with pytest.raises(DecodeError, match="unknown selector"):
            ArtifactDecoder("v2").decode(output(voucher_body()), Stream.OUTPUTS)

    def test_pinned_v1_prefixes_even_selector_like_bodies(self):
        body = bytes.fromhex(VOUCHER_SELECTOR) + voucher_body()
        decoder = ArtifactDecoder("v1")
        with pytest.raises(DecodeError):
            decoder.decode(output(body), Stream.OUTPUTS)

    def test_heuristic_decision_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="rollsync.sync.decoder")
        ArtifactDecoder().decode(output(voucher_body(), index=5, input_index=4), Stream.OUTPUTS)
        assert "guessed v1" in caplog.text
        assert "4:5" in caplog.text

    def test_no_heuristic_log_when_explicit(self, caplog):
        caplog.set_level(logging.DEBUG, logger="rollsync.sync.decoder")
        ArtifactDecoder("v1").decode(output(voucher_body()), Stream.OUTPUTS)
        assert "guessed" not in caplog.text

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            ArtifactDecoder("v3")


class TestOutputErrors:
    def test_invalid_hex(self):
        with pytest.raises(DecodeError, match="Invalid hex"):
            ArtifactDecoder().decode(output("0xzz"), Stream.OUTPUTS)

    def test_missing_input_index(self):
        with pytest.raises(DecodeError, match="no input index"):
            ArtifactDecoder().decode(output(voucher_body(), input_index=None), Stream.OUTPUTS)

    def test_unknown_v2_selector(self):
        with pytest.raises(DecodeError, match="unknown selector"):
            ArtifactDecoder().decode(output("0xdeadbeef", encoding=PayloadEncoding.V2), Stream.OUTPUTS)

    def test_decode_is_deterministic(self):
        decoder = ArtifactDecoder()
        entry = output(voucher_body())
        assert decoder.decode(entry, Stream.OUTPUTS) == decoder.decode(entry, Stream.OUTPUTS)


class TestInputDecoding:
    def test_plain_blob_is_wrapped(self):
        entry = RawEntry(cursor="i0", index=0, blob="0x1234")
        artifact = ArtifactDecoder().decode(entry, Stream.INPUTS)

        assert artifact == Input(index=0, blob="0x1234")
        assert artifact.status is CompletionStatus.UNPROCESSED
        assert artifact.msg_sender is None

    def test_evm_advance_fields(self):
        args = abi_encode(EVM_ADVANCE_TYPES, [31337, APP, SENDER, 120, 1700000000, 99, 0, b"hi"])
        blob = "0x" + EVM_ADVANCE_SELECTOR + args.hex()
        artifact = ArtifactDecoder().decode(RawEntry(cursor="i0", index=0, blob=blob), Stream.INPUTS)

        assert artifact.blob == blob
        assert artifact.chain_id == 31337
        assert artifact.app_contract == to_checksum_address(APP)
        assert artifact.msg_sender == to_checksum_address(SENDER)
        assert artifact.block_number == 120
        assert artifact.block_timestamp == 1700000000
        assert artifact.prev_randao == "99"
        assert artifact.payload == "0x" + b"hi".hex()

    def test_evm_advance_decoding_can_be_disabled(self):
        args = abi_encode(EVM_ADVANCE_TYPES, [1, APP, SENDER, 1, 1, 1, 0, b""])
        blob = "0x" + EVM_ADVANCE_SELECTOR + args.hex()
        artifact = ArtifactDecoder(decode_inputs=False).decode(RawEntry(cursor="i0", index=0, blob=blob), Stream.INPUTS)
        assert artifact.msg_sender is None

    def test_truncated_evm_advance_raises(self):
        blob = "0x" + EVM_ADVANCE_SELECTOR + "00" * 8
        with pytest.raises(DecodeError) as exc_info:
            ArtifactDecoder().decode(RawEntry(cursor="i0", index=3, blob=blob), Stream.INPUTS)
        assert exc_info.value.stream == "inputs"


class TestReportDecoding:
    def test_direct_mapping(self):
        entry = RawEntry(cursor="r2", index=2, blob="0xdeadbeef", input_index=5)
        assert ArtifactDecoder().decode(entry, Stream.REPORTS) == Report(input_index=5, index=2, blob="0xdeadbeef")

    def test_missing_input_index(self):
        with pytest.raises(DecodeError):
            ArtifactDecoder().decode(RawEntry(cursor="r2", index=2, blob="0x"), Stream.REPORTS)


class TestIsAbiBytes:
    def test_notice_body(self):
        assert is_abi_bytes(notice_body(b""))
        assert is_abi_bytes(notice_body(b"x" * 40))

    def test_voucher_body(self):
        assert not is_abi_bytes(voucher_body())

    def test_short_body(self):
        assert not is_abi_bytes(b"\x00" * 32)
