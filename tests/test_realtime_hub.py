import asyncio

from marketplace.realtime import ChatHub


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


def test_emit_reaches_room_members_only():
    hub = ChatHub()
    a, b, outsider = FakeSocket(), FakeSocket(), FakeSocket()
    hub.join("room-1", a)
    hub.join("room-1", b)
    hub.join("room-2", outsider)

    delivered = asyncio.run(hub.emit("room-1", "message", {"content": "hi"}))

    assert delivered == 2
    assert a.sent == [{"event": "message", "data": {"content": "hi"}}]
    assert b.sent == a.sent
    assert outsider.sent == []


def test_failed_socket_is_dropped_everywhere():
    hub = ChatHub()
    good, dead = FakeSocket(), FakeSocket(fail=True)
    hub.join("room-1", good)
    hub.join("room-1", dead)
    hub.join("room-2", dead)

    assert asyncio.run(hub.emit("room-1", "message", "x")) == 1
    assert hub.members("room-1") == 1
    assert hub.members("room-2") == 0


def test_leave_and_disconnect():
    hub = ChatHub()
    socket = FakeSocket()
    hub.join("room-1", socket)
    hub.join("room-2", socket)

    hub.leave("room-1", socket)
    assert hub.members("room-1") == 0
    assert hub.members("room-2") == 1

    hub.disconnect(socket)
    assert hub.members("room-2") == 0
    assert asyncio.run(hub.emit("room-2", "message", "x")) == 0
