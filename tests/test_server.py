import logging
import socket

import pytest

from segmem.config import MemoryConfig
from segmem.model import AllocationAlgorithm, OpCode, Segment, SegmentTable
from segmem.net import Connection, listen
from segmem.segments import format_address
from segmem.server import MemoryServer, main
from segmem.wire import HEADER_SIZE, Reader, deserialize_segments, message_packet, serialize_segments

LOGGER = logging.getLogger("test-memory-server")


def make_config(memory_size=64, algorithm=AllocationAlgorithm.FIRST):
    return MemoryConfig(
        port="0",
        memory_size=memory_size,
        segment_zero_size=8,
        segment_count=4,
        memory_delay=0,
        compaction_delay=0,
        algorithm=algorithm,
    )


@pytest.fixture
def setup():
    server = MemoryServer(make_config(), LOGGER)
    peers = {}
    sockets = []
    for name in ("kernel", "cpu", "filesystem"):
        ours, theirs = socket.socketpair()
        sockets += [ours, theirs]
        setattr(server, name, Connection(ours, LOGGER))
        peers[name] = Connection(theirs, LOGGER)
    yield server, peers
    for sock in sockets:
        sock.close()


def receive_table(peer):
    assert peer.receive_operation() == OpCode.PACKAGE
    return deserialize_segments(Reader(peer.receive_buffer()))


def receive_text(peer):
    assert peer.receive_operation() == OpCode.MESSAGE
    return peer.receive_message()


def start(server, peers, pid):
    peers["kernel"].send_uint32(0)
    server.execute(f"INICIAR {pid}")
    return receive_table(peers["kernel"])


def test_start_process_sends_table(setup):
    server, peers = setup
    table = start(server, peers, 1)
    assert table.pid == 1
    assert len(table.segments) == 4
    assert table.segments[0].base == 0
    assert table.segments[0].limit == 8
    assert all(segment.base is None for segment in table.segments[1:])
    assert server.manager.find_table(1) is not None


def test_create_segment_answers_with_base(setup):
    server, peers = setup
    start(server, peers, 1)
    server.execute("CREATE_SEGMENT 1 16 1")
    segment = server.manager.find_table(1).segments[1]
    assert segment.base == 8
    assert segment.size() == 16
    assert not segment.free
    assert receive_text(peers["kernel"]) == f"SEGMENT {format_address(segment.base)}"


def test_create_segment_out_of_memory_removes_process(setup):
    server, peers = setup
    start(server, peers, 1)
    server.execute("CREATE_SEGMENT 1 100 1")
    assert receive_text(peers["kernel"]) == "OUT"
    assert server.manager.find_table(1) is None


def test_fragmented_memory_asks_for_compaction_then_compacts(setup):
    server, peers = setup
    kernel = peers["kernel"]
    start(server, peers, 1)
    server.execute("CREATE_SEGMENT 1 16 1")
    receive_text(kernel)
    server.execute("CREATE_SEGMENT 2 16 1")
    receive_text(kernel)
    kernel.send_uint32(0)
    server.execute("DELETE_SEGMENT 1 1")
    receive_table(kernel)

    server.execute("CREATE_SEGMENT 3 30 1")
    assert receive_text(kernel) == "COMPACT"

    kernel.send_uint32(0)
    server.execute("COMPACT")
    table = receive_table(kernel)
    assert table.segments[2].base == 8
    holes = server.manager.holes
    assert len(holes) == 1
    assert holes[0].base == table.segments[2].limit
    assert holes[0].limit == 64


def test_delete_segment_unplaces_it(setup):
    server, peers = setup
    start(server, peers, 3)
    server.execute("CREATE_SEGMENT 2 8 3")
    receive_text(peers["kernel"])
    free_before = server.manager.free_memory
    peers["kernel"].send_uint32(0)
    server.execute("DELETE_SEGMENT 2 3")
    table = receive_table(peers["kernel"])
    assert table.segments[2].base is None
    assert table.segments[2].free
    assert server.manager.free_memory == free_before + 8


def test_finish_process_releases_memory(setup):
    server, peers = setup
    start(server, peers, 4)
    free_initial = server.manager.free_memory
    server.execute("CREATE_SEGMENT 1 10 4")
    receive_text(peers["kernel"])
    server.execute("FINALIZAR 4")
    assert server.manager.find_table(4) is None
    assert server.manager.free_memory == free_initial


def test_move_out_then_move_in_round_trip(setup):
    server, peers = setup
    server.execute("MOV_OUT 0x10 hola 4")
    assert server.manager.read(0x10, 4) == b"hola"
    server.execute("MOV_IN 0x10 4")
    assert receive_text(peers["cpu"]) == "hola"


def test_file_write_reads_memory_for_filesystem(setup):
    server, peers = setup
    server.manager.write(0x20, b"datos")
    server.execute("F_WRITE 0x20 5")
    assert receive_text(peers["filesystem"]) == "datos"


def test_unknown_request_changes_nothing(setup):
    server, peers = setup
    holes_before = [(hole.base, hole.limit) for hole in server.manager.holes]
    server.execute("SET AX 1")
    assert [(hole.base, hole.limit) for hole in server.manager.holes] == holes_before
    assert server.manager.tables == []


def test_serve_kernel_runs_messages_until_disconnect():
    server = MemoryServer(make_config(), LOGGER)
    server.manager.create_table(5)
    ours, theirs = socket.socketpair()
    with ours, theirs:
        theirs.sendall(message_packet("FINALIZAR 5").to_bytes())
        theirs.shutdown(socket.SHUT_WR)
        server.serve_kernel(Connection(ours, LOGGER))
    assert server.manager.find_table(5) is None


def test_serve_kernel_acknowledges_segment_table():
    server = MemoryServer(make_config(), LOGGER)
    table = SegmentTable(7, [Segment(0, 8, free=False), Segment(None, None, id=1)])
    data = serialize_segments(table).to_bytes()
    ours, theirs = socket.socketpair()
    with ours, theirs:
        theirs.sendall(data)
        theirs.shutdown(socket.SHUT_WR)
        server.serve_kernel(Connection(ours, LOGGER))
        ack = Connection(theirs, LOGGER).receive_uint32()
    assert ack == len(data)
    assert server.received_table.pid == 7
    assert server.received_table.segments[1].free
    assert len(data) > HEADER_SIZE


@pytest.mark.parametrize("sent, expected", [(1, 0), (2, 0xFFFF_FFFF)])
def test_accept_module_answers_handshake(sent, expected):
    server = MemoryServer(make_config(), LOGGER)
    with listen("127.0.0.1", 0) as listener:
        client = socket.create_connection(listener.getsockname()[:2])
        with client:
            peer = Connection(client, LOGGER)
            peer.send_uint32(sent)
            connection = server.accept_module(listener)
            with connection:
                assert peer.receive_uint32() == expected


def test_main_with_missing_config_returns_two(tmp_path):
    result = main(["--config", str(tmp_path / "missing.config"), "--log", str(tmp_path / "memory.log")])
    assert result == 2
    assert (tmp_path / "memory.log").exists()