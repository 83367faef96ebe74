"""测试用的最小 RouterOS API 服务端，跑在本地回环端口上。"""
import asyncio
import binascii
import hashlib

from netsentry.routeros.protocol import encode_sentence, parse_sentence, read_sentence

FATAL = object()
HANG = object()


class Trap:
    def __init__(self, message: str, category: str | None = None):
        self.message = message
        self.category = category


class FakeRouterOS:
    """
    responses: 命令路径 → 行列表 / Trap / FATAL / HANG。
    legacy_login=True 时模拟 6.43 之前的 challenge-response 登录。
    """

    def __init__(self, username: str = "admin", password: str = "secret",
                 responses: dict | None = None, legacy_login: bool = False):
        self.username = username
        self.password = password
        self.responses = responses or {}
        self.legacy_login = legacy_login
        self.challenge = "a1b2c3d4e5f60718293a4b5c6d7e8f90"
        self.commands: list[list[str]] = []
        self.port = 0
        self._server: asyncio.AbstractServer | None = None
        self._writers: list[asyncio.StreamWriter] = []

    async def start(self) -> "FakeRouterOS":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def stop(self) -> None:
        self.drop_clients()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    def drop_clients(self) -> None:
        for writer in self._writers:
            writer.close()
        self._writers.clear()

    @staticmethod
    def _send(writer: asyncio.StreamWriter, reply_type: str, attrs: dict | None = None,
              tag: str | None = None) -> None:
        words = [reply_type] + [f"={k}={v}" for k, v in (attrs or {}).items()]
        if tag is not None:
            words.append(f".tag={tag}")
        writer.write(encode_sentence(words))

    def _check_login(self, attrs: dict) -> dict | None:
        """返回 None 表示拒绝，否则返回 !done 的属性。"""
        if attrs.get("name") != self.username:
            return None
        if not self.legacy_login:
            return {} if attrs.get("password") == self.password else None
        if "response" not in attrs:
            return {"ret": self.challenge}
        digest = hashlib.md5(
            b"\x00" + self.password.encode() + binascii.unhexlify(self.challenge)
        ).hexdigest()
        return {} if attrs["response"] == "00" + digest else None

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        try:
            while True:
                words = await read_sentence(reader)
                if not words:
                    continue
                self.commands.append(words)
                command = parse_sentence(words)
                path, tag = command.type, command.tag

                if path == "/login":
                    result = self._check_login(command.attrs)
                    if result is None:
                        self._send(writer, "!trap", {"message": "invalid user name or password (6)"}, tag)
                    self._send(writer, "!done", result or {}, tag)
                elif path == "/cancel":
                    self._send(writer, "!done", {}, tag)
                else:
                    response = self.responses.get(path, [])
                    if response is HANG:
                        continue
                    if response is FATAL:
                        self._send(writer, "!fatal")
                        await writer.drain()
                        writer.close()
                        return
                    if isinstance(response, Trap):
                        attrs = {"message": response.message}
                        if response.category is not None:
                            attrs["category"] = response.category
                        self._send(writer, "!trap", attrs, tag)
                    else:
                        for row in response:
                            self._send(writer, "!re", row, tag)
                    self._send(writer, "!done", {}, tag)
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()
