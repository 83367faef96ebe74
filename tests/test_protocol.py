"""RouterOS API 线路编码测试。"""
import asyncio

import pytest

from netsentry.routeros.protocol import (
    build_command,
    encode_length,
    encode_sentence,
    encode_word,
    parse_sentence,
    read_length,
    read_sentence,
)


def _reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestEncodeLength:
    @pytest.mark.parametrize("length,expected", [
        (0, b"\x00"),
        (0x7F, b"\x7f"),
        (0x80, b"\x80\x80"),
        (0x3FFF, b"\xbf\xff"),
        (0x4000, b"\xc0\x40\x00"),
        (0x1FFFFF, b"\xdf\xff\xff"),
        (0x200000, b"\xe0\x20\x00\x00"),
        (0xFFFFFFF, b"\xef\xff\xff\xff"),
        (0x10000000, b"\xf0\x10\x00\x00\x00"),
    ])
    def test_boundaries(self, length, expected):
        assert encode_length(length) == expected

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            encode_length(-1)

    @pytest.mark.parametrize("length", [0, 0x7F, 0x80, 0x3FFF, 0x4000, 0x1FFFFF, 0x200000, 0x10000000])
    async def test_read_length_decodes_encoded(self, length):
        assert await read_length(_reader(encode_length(length))) == length

    async def test_control_byte_rejected(self):
        with pytest.raises(ValueError):
            await read_length(_reader(b"\xf8"))


class TestSentences:
    def test_encode_sentence_terminates_with_empty_word(self):
        data = encode_sentence(["/login"])
        assert data == b"\x06/login\x00"

    def test_encode_word_utf8_length(self):
        # 长度是字节数而不是字符数
        assert encode_word("ä") == b"\x02\xc3\xa4"

    async def test_read_sentence(self):
        data = encode_sentence(["!re", "=cpu-load=12", ".tag=3"]) + encode_sentence(["!done", ".tag=3"])
        reader = _reader(data)
        assert await read_sentence(reader) == ["!re", "=cpu-load=12", ".tag=3"]
        assert await read_sentence(reader) == ["!done", ".tag=3"]

    async def test_truncated_sentence_raises(self):
        with pytest.raises(asyncio.IncompleteReadError):
            await read_sentence(_reader(b"\x05!do"))


class TestParseSentence:
    def test_attributes_and_tag(self):
        reply = parse_sentence(["!re", "=name=ether1", "=comment=a=b", "=disabled", ".tag=7"])
        assert reply.type == "!re"
        assert reply.tag == "7"
        assert reply.attrs == {"name": "ether1", "comment": "a=b", "disabled": ""}

    def test_untagged(self):
        reply = parse_sentence(["!fatal", "session terminated"])
        assert reply.tag is None
        assert reply.attrs == {}

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            parse_sentence([])


class TestBuildCommand:
    def test_full_command(self):
        words = build_command(
            "/interface/print",
            {".proplist": "name,rx-byte,tx-byte"},
            queries=["name=ether1"],
            tag="4",
        )
        assert words == [
            "/interface/print",
            "=.proplist=name,rx-byte,tx-byte",
            "?name=ether1",
            ".tag=4",
        ]

    def test_query_prefix_kept(self):
        assert build_command("/ip/route/print", queries=["?dst-address=0.0.0.0/0"]) == [
            "/ip/route/print", "?dst-address=0.0.0.0/0",
        ]
