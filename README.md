# segmem

`segmem` is the memory module of a small operating-system simulator. It keeps
a block of simulated physical memory divided into segments, hands out space
with first, best or worst fit, compacts memory when the holes are too
scattered, and answers requests from the kernel, CPU and file-system modules
over TCP.

## Installing

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

## Configuration

The server reads a properties file of `KEY=VALUE` lines; blank lines and
lines starting with `#` are skipped:

    PUERTO_ESCUCHA=8002
    TAM_MEMORIA=4096
    TAM_SEGMENTO_0=128
    CANT_SEGMENTOS=16
    RETARDO_MEMORIA=1000
    RETARDO_COMPACTACION=60000
    ALGORITMO_ASIGNACION=BEST

`ALGORITMO_ASIGNACION` is `FIRST` or `BEST` (any case); any other value
selects worst fit. Delays are in milliseconds. All keys are required, and
every key but the port and the algorithm must be an integer
(`segmem.config.MemoryConfig.from_file`).

## Running the server

    segmem

Options:

- `--config PATH` – configuration file (default `../../config/Memoria.config`)
- `--log PATH` – log file; messages also go to standard output
  (default `../../logs/logMemoria.log`)
- `--host ADDRESS` – address to listen on (default: every interface)

The command exits with status 1 when the log file cannot be created and 2
when the configuration cannot be read.

The server accepts the file system, then the CPU, then the kernel. Each
client opens with a handshake: it sends the 32-bit value 1 and is answered
with 0 (any other value is answered with `0xFFFFFFFF`). Requests then arrive
as MESSAGE packets holding a space-separated line:

| Request | Effect and answer |
| --- | --- |
| `INICIAR pid` | creates the process's segment table and sends it to the kernel |
| `CREATE_SEGMENT id size pid` | places the segment and sends `SEGMENT 0x…` to the kernel; sends `COMPACT` when no single hole is large enough; sends `OUT` and removes the process when too little memory is free |
| `DELETE_SEGMENT id pid` | frees the segment and sends the updated table to the kernel |
| `FINALIZAR pid` | frees the process's segments and drops its table |
| `MOV_IN address size` | sends the bytes at the hexadecimal address to the CPU |
| `MOV_OUT address value size` | writes the value, cut or padded with NUL bytes to `size` |
| `F_WRITE address size` | sends the bytes at the address to the file system |
| `COMPACT` | compacts memory and sends every segment table to the kernel |

Other requests are ignored. The kernel may also send a segment table as a
PACKAGE packet; the server stores it and acknowledges the byte count.

## Using it as a library

    from segmem.model import AllocationAlgorithm
    from segmem.segments import SegmentManager, CompactionNeeded, OutOfMemoryError

    manager = SegmentManager(4096, 128, 16, AllocationAlgorithm.BEST)
    table = manager.create_table(1)
    try:
        base = manager.allocate_segment(1, 1, 64)
    except CompactionNeeded:
        manager.compact()
    except OutOfMemoryError:
        manager.remove_process(1)

Further modules:

- `segmem.model` – processes (`Pcb`), `Registers`, `Segment`,
  `SegmentTable`, `Resource` and the shared enumerations.
- `segmem.wire` – the packet format (`Packet`, `Reader`) and serialisers for
  process control blocks, execution contexts and segment tables.
- `segmem.net` – `Connection` and the `connect`, `listen` and
  `accept_client` helpers.
- `segmem.instructions` – `InstructionCode` and `parse_instruction`.
- `segmem.bitmap` – `MemoryBitmap`, a per-byte occupancy map with first,
  best and worst fit searches.

## What it does not do

The package is the memory module only. It does not contain the kernel, CPU
or file-system modules it serves; they must be supplied separately, speaking
the packet format in `segmem.wire`. `F_READ` requests are accepted but do
nothing. `MemoryBitmap` stands on its own: `SegmentManager` tracks free space
with its hole list and does not use the bitmap.