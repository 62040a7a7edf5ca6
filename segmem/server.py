"""The memory module: serves the kernel, CPU and file system over TCP."""

from __future__ import annotations

import argparse
import logging
import threading
import time
from socket import socket as Socket

from segmem.config import MemoryConfig, setup_logger
from segmem.instructions import InstructionCode, instruction_code
from segmem.model import OpCode, SegmentTable
from segmem.net import Connection, accept_client, listen
from segmem.segments import (
    CompactionNeeded,
    OutOfMemoryError,
    SegmentManager,
    format_address,
)
from segmem.wire import HEADER_SIZE, Reader, deserialize_segments, serialize_segments

_LOG = logging.getLogger(__name__)

DEFAULT_CONFIG = "../../config/Memoria.config"
DEFAULT_LOG = "../../logs/logMemoria.log"


def _text(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


class MemoryServer:
    """Executes memory requests and answers the modules that sent them."""

    def __init__(self, config: MemoryConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self.logger = logger or _LOG
        self.manager = SegmentManager(
            config.memory_size,
            config.segment_zero_size,
            config.segment_count,
            config.algorithm,
        )
        self.logger.info("Reserved space: %s bytes", config.memory_size)
        self.kernel: Connection | None = None
        self.cpu: Connection | None = None
        self.filesystem: Connection | None = None
        self.received_table: SegmentTable | None = None
        self._filesystem_lock = threading.RLock()

    # -- connections ------------------------------------------------------

    def accept_module(self, listener: Socket) -> Connection:
        """Accept the next module on ``listener`` and answer its handshake."""
        connection = accept_client(listener)
        self.logger.debug("A client connected")
        connection.answer_handshake()
        return connection

    @staticmethod
    def _require(connection: Connection | None, module: str) -> Connection:
        if connection is None:
            raise RuntimeError(f"the {module} module is not connected")
        return connection

    def _send_segments(self, table: SegmentTable) -> None:
        kernel = self._require(self.kernel, "kernel")
        kernel.send_packet(serialize_segments(table), "kernel")

    def _delay(self, milliseconds: int) -> None:
        if milliseconds > 0:
            time.sleep(milliseconds / 1000)

    # -- requests ---------------------------------------------------------

    def execute(self, line: str) -> None:
        """Carry out one textual request and send its answer, if any."""
        parameters = line.split(" ")
        code = instruction_code(parameters[0])
        handlers = {
            InstructionCode.INICIAR: self._start_process,
            InstructionCode.CREATE_SEGMENT: self._create_segment,
            InstructionCode.DELETE_SEGMENT: self._delete_segment,
            InstructionCode.FINALIZAR: self._finish_process,
            InstructionCode.MOV_IN: self._move_in,
            InstructionCode.MOV_OUT: self._move_out,
            InstructionCode.F_WRITE: self._file_write,
            InstructionCode.COMPACT: self._compact,
        }
        handler = handlers.get(code)
        if handler is not None:
            handler(parameters[1:])

    def _start_process(self, args: list[str]) -> None:
        table = self.manager.create_table(int(args[0]))
        self._send_segments(table)

    def _create_segment(self, args: list[str]) -> None:
        segment_id, size, pid = args[0], int(args[1]), args[2]
        kernel = self._require(self.kernel, "kernel")
        try:
            base = self.manager.allocate_segment(int(pid), int(segment_id), size)
        except OutOfMemoryError:
            self.logger.error("Out of memory - closing PID: %s", pid)
            self.logger.info("Process removed PID: %s", pid)
            self.manager.remove_process(int(pid))
            kernel.send_message("OUT")
        except CompactionNeeded:
            kernel.send_message("COMPACT")
        else:
            self.logger.info(
                "PID: %s - Create segment: %s - Base: %s - SIZE: %s",
                pid, segment_id, format_address(base), size,
            )
            kernel.send_message(f"SEGMENT {format_address(base)}")

    def _delete_segment(self, args: list[str]) -> None:
        segment_id, pid = args[0], args[1]
        table = self.manager.find_table(int(pid))
        if table is None:
            raise KeyError(f"no segment table for PID {pid}")
        segment = table.segments[int(segment_id)]
        base = segment.base
        self.logger.info(
            "PID: %s - Delete segment: %s - Base: %s - SIZE: %d",
            pid, segment_id,
            format_address(base) if base is not None else "(none)",
            segment.size(),
        )
        self.manager.delete_segment(segment)
        self._send_segments(table)

    def _finish_process(self, args: list[str]) -> None:
        self.manager.remove_process(int(args[0]))
        self.logger.info("Process removed PID: %s", args[0])

    def _move_in(self, args: list[str]) -> None:
        data = self.manager.read(int(args[0], 16), int(args[1]))
        self._delay(self.config.memory_delay)
        self._require(self.cpu, "CPU").send_message(_text(data))

    def _move_out(self, args: list[str]) -> None:
        address, value, size = int(args[0], 16), args[1], int(args[2])
        data = value.encode("utf-8")[:size].ljust(size, b"\0")
        self.manager.write(address, data)
        self._delay(self.config.memory_delay)

    def _file_write(self, args: list[str]) -> None:
        data = self.manager.read(int(args[0], 16), int(args[1]))
        self._delay(self.config.memory_delay)
        self._require(self.filesystem, "file system").send_message(_text(data))

    def _compact(self, args: list[str]) -> None:
        with self._filesystem_lock:
            self.manager.compact()
            self._delay(self.config.compaction_delay)
        for table in list(self.manager.tables):
            self._send_segments(table)

    # -- loops ------------------------------------------------------------

    def serve_kernel(self, connection: Connection) -> None:
        """Handle the kernel's requests until it disconnects."""
        self.kernel = connection
        while True:
            try:
                op_code = connection.receive_operation()
                if op_code == OpCode.MESSAGE:
                    self.execute(connection.receive_message())
                elif op_code == OpCode.PACKAGE:
                    buffer = connection.receive_buffer()
                    reader = Reader(buffer)
                    self.received_table = deserialize_segments(reader)
                    self.logger.info(
                        "Received segment table - PID: %d", self.received_table.pid
                    )
                    connection.send_uint32(reader.offset + HEADER_SIZE)
            except EOFError:
                return

    def serve_cpu(self, connection: Connection) -> None:
        """Handle the CPU's requests until it disconnects."""
        self.cpu = connection
        while True:
            try:
                if connection.receive_operation() == OpCode.MESSAGE:
                    self.execute(connection.receive_message())
            except EOFError:
                return

    def serve_filesystem(self, connection: Connection) -> None:
        """Handle the file system's requests until it disconnects."""
        self.filesystem = connection
        while True:
            try:
                if connection.receive_operation() == OpCode.MESSAGE:
                    line = connection.receive_message()
                    with self._filesystem_lock:
                        self.execute(line)
            except EOFError:
                return

    def serve(self, host: str | None = None) -> None:
        """Accept the file system, the CPU and the kernel, in that order, and serve them."""
        with listen(host, self.config.port) as listener:
            self.logger.info("Server ready to receive clients")
            self.filesystem = self.accept_module(listener)
            threading.Thread(
                target=self.serve_filesystem, args=(self.filesystem,), daemon=True
            ).start()
            self.cpu = self.accept_module(listener)
            threading.Thread(
                target=self.serve_cpu, args=(self.cpu,), daemon=True
            ).start()
            self.kernel = self.accept_module(listener)
            self.serve_kernel(self.kernel)


def main(argv: list[str] | None = None) -> int:
    """Start the memory module."""
    parser = argparse.ArgumentParser(prog="segmem", description="Segmented memory module")
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="configuration file")
    parser.add_argument("--log", default=DEFAULT_LOG, help="log file")
    parser.add_argument("--host", default=None, help="address to listen on")
    args = parser.parse_args(argv)

    try:
        logger = setup_logger(args.log, "Memoria")
    except OSError as error:
        print(f"cannot create the log file: {error}")
        return 1
    try:
        config = MemoryConfig.from_file(args.config)
    except (OSError, ValueError) as error:
        logger.error("Cannot read the memory configuration: %s", error)
        return 2
    config.log(logger)
    logger.info("Memory started correctly")
    MemoryServer(config, logger).serve(args.host)
    return 0