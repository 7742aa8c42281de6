from __future__ import annotations

import pytest

from core.commands import (
    DeepLinkBuilder,
    ManageCommand,
    NoCommand,
    SubscribeCommand,
    UnsubscribeCommand,
    decode,
    decode_binary,
    encode,
)
from core.errors import CommandDecodeError


def test_known_payloads() -> None:
    assert encode(SubscribeCommand(42)) == "GgsJKgAAAAAAAAAQAQ"
    assert encode(UnsubscribeCommand(42)) == "GgsJKgAAAAAAAAAQAg"
    assert encode(ManageCommand()) == "IgA"


def test_decodes_negative_hash() -> None:
    assert decode("GgsJ_5xfEFkYbu0QAQ") == SubscribeCommand(-1338105268476601089)


@pytest.mark.parametrize("query_hash", [0, 1, -1, 42, 2**63 - 1, -(2**63), -1338105268476601089])
def test_round_trip_for_64_bit_hashes(query_hash: int) -> None:
    for command in (SubscribeCommand(query_hash), UnsubscribeCommand(query_hash)):
        payload = encode(command)
        assert len(payload) <= 64
        assert "=" not in payload
        assert decode(payload) == command


def test_unknown_fields_are_skipped() -> None:
    assert decode_binary(b"\x08\x01\x22\x00") == ManageCommand()


def test_empty_payload_is_no_command() -> None:
    assert decode("") == NoCommand()


@pytest.mark.parametrize("payload", ["!!!", "GgsJKg", "é"])
def test_malformed_payload_raises(payload: str) -> None:
    with pytest.raises(CommandDecodeError):
        decode(payload)


def test_deep_links() -> None:
    links = DeepLinkBuilder("marketscope_bot")

    assert links.base_url == "https://t.me/marketscope_bot"
    assert links.subscribe_link(42).url == "https://t.me/marketscope_bot?start=GgsJKgAAAAAAAAAQAQ"
    assert links.unsubscribe_link(42).text == "Unsubscribe"
    assert links.manage_link().url.endswith("?start=IgA")
