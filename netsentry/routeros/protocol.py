"""
RouterOS API 线路编码。

一个 sentence 由若干 word 组成，以长度为 0 的 word 结尾；每个 word 前面是 1 到 5 字节的
变长长度前缀。回复的第一个 word 是类型（!re、!done、!trap、!fatal），其后是
=key=value 属性，以及可选的 .tag=N。
"""
import asyncio
from dataclasses import dataclass, field

ENCODING = "utf-8"


def encode_length(length: int) -> bytes:
    """按 RouterOS API 规则编码 word 长度。"""
    if length < 0:
        raise ValueError(f"negative length: {length}")
    if length < 0x80:
        return bytes([length])
    if length < 0x4000:
        return (length | 0x8000).to_bytes(2, "big")
    if length < 0x200000:
        return (length | 0xC00000).to_bytes(3, "big")
    if length < 0x10000000:
        return (length | 0xE0000000).to_bytes(4, "big")
    if length < 0x100000000:
        return b"\xf0" + length.to_bytes(4, "big")
    raise ValueError(f"word too long: {length}")


def encode_word(word: str) -> bytes:
    data = word.encode(ENCODING)
    return encode_length(len(data)) + data


def encode_sentence(words: list[str]) -> bytes:
    return b"".join(encode_word(w) for w in words) + b"\x00"


async def read_length(reader: asyncio.StreamReader) -> int:
    first = (await reader.readexactly(1))[0]
    if first & 0x80 == 0x00:
        return first
    if first & 0xC0 == 0x80:
        rest = await reader.readexactly(1)
        return ((first & 0x3F) << 8) | rest[0]
    if first & 0xE0 == 0xC0:
        rest = await reader.readexactly(2)
        return ((first & 0x1F) << 16) | int.from_bytes(rest, "big")
    if first & 0xF0 == 0xE0:
        rest = await reader.readexactly(3)
        return ((first & 0x0F) << 24) | int.from_bytes(rest, "big")
    if first == 0xF0:
        rest = await reader.readexactly(4)
        return int.from_bytes(rest, "big")
    # 0xF8 及以上是保留的控制字节
    raise ValueError(f"unsupported control byte: {first:#x}")


async def read_word(reader: asyncio.StreamReader) -> str:
    length = await read_length(reader)
    if length == 0:
        return ""
    data = await reader.readexactly(length)
    return data.decode(ENCODING, errors="replace")


async def read_sentence(reader: asyncio.StreamReader) -> list[str]:
    words = []
    while True:
        word = await read_word(reader)
        if word == "":
            return words
        words.append(word)


@dataclass
class Reply:
    """解析后的回复 sentence。"""
    type: str
    attrs: dict = field(default_factory=dict)
    tag: str | None = None


def parse_sentence(words: list[str]) -> Reply:
    if not words:
        raise ValueError("empty sentence")
    reply = Reply(type=words[0])
    for word in words[1:]:
        if word.startswith(".tag="):
            reply.tag = word[5:]
        elif word.startswith("="):
            # =key=value，value 本身可能包含 '='
            key, sep, value = word[1:].partition("=")
            reply.attrs[key] = value if sep else ""
        # ?query 和 API 属性在回复中不会出现，忽略其他 word
    return reply


def build_command(path: str, attrs: dict | None = None, queries: list[str] | None = None,
                  tag: str | None = None) -> list[str]:
    """组装命令 sentence：路径、=属性、?查询、.tag。"""
    words = [path]
    for key, value in (attrs or {}).items():
        words.append(f"={key}={value}")
    for q in queries or []:
        words.append(q if q.startswith("?") else f"?{q}")
    if tag is not None:
        words.append(f".tag={tag}")
    return words
