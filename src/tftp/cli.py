from __future__ import annotations

import argparse
import logging
import signal
from typing import Tuple

from .client import TftpClient
from .constants import ANY_HOST, DEFAULT_MAX_RETRIES, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .errors import TftpError
from .net import Impairment
from .server import TftpServer
from .storage import LocalFileStore

LOG = logging.getLogger("tftp")


def port_number(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port {value!r}") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port {port} is outside 0-65535")
    return port


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"{number} is not positive")
    return number


def retry_count(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"{number} is negative")
    return number


def parse_remote(value: str) -> Tuple[str, int]:
    host, sep, port = value.rpartition(":")
    if not sep:
        return value, DEFAULT_PORT
    return host or "127.0.0.1", port_number(port)


def cmd_server(args: argparse.Namespace) -> int:
    server = TftpServer(
        LocalFileStore(args.root),
        args.listen_host,
        args.port,
        timeout_ms=args.timeout_ms,
        max_retries=args.max_retries,
        impairment=Impairment(args.loss_rate, args.delay_ms),
        logger=LOG,
    )

    def request_stop(signum: int, frame: object) -> None:
        LOG.info("received %s; shutting down", signal.Signals(signum).name)
        server.stop()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    try:
        server.listen()
    except TftpError as exc:
        LOG.critical("server failed: %s", exc)
        return 1
    return 0


def cmd_client(args: argparse.Namespace) -> int:
    client = TftpClient(
        LocalFileStore(args.root),
        args.listen_host,
        timeout_ms=args.timeout_ms,
        max_retries=args.max_retries,
        impairment=Impairment(args.loss_rate, args.delay_ms),
        logger=LOG,
    )
    try:
        if args.read is not None:
            metrics = client.request_file(args.remote, args.read)
        else:
            metrics = client.write_file(args.remote, args.write)
    except TftpError as exc:
        LOG.error("transfer failed: %s", exc)
        return 1

    LOG.info(
        "%d bytes in %.3fs (%.2f Mbit/s), %d retransmit(s)",
        metrics.bytes_transferred,
        metrics.duration_s,
        metrics.throughput_mbps,
        metrics.retransmits,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tftp", description="TFTP (RFC 1350) server and client.")

    role = p.add_mutually_exclusive_group(required=True)
    role.add_argument("--server", action="store_true", help="serve files from --root")
    role.add_argument("--client", action="store_true", help="transfer one file with --remote")

    p.add_argument("--remote", type=parse_remote, default=("127.0.0.1", DEFAULT_PORT), help="server HOST:PORT")
    transfer = p.add_mutually_exclusive_group()
    transfer.add_argument("--read", metavar="PATH", help="download PATH from the server")
    transfer.add_argument("--write", metavar="PATH", help="upload PATH to the server")

    p.add_argument("--listen-host", default=ANY_HOST)
    p.add_argument("--port", type=port_number, default=DEFAULT_PORT, help="server port")
    p.add_argument("--root", default=".", help="directory files are read from and written to")
    p.add_argument("--timeout-ms", type=positive_int, default=DEFAULT_TIMEOUT_MS)
    p.add_argument("--max-retries", type=retry_count, default=DEFAULT_MAX_RETRIES)
    p.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss")
    p.add_argument("--delay-ms", type=int, default=0, help="simulate per-packet delay")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    if args.client and args.read is None and args.write is None:
        p.error("--client needs one of --read or --write")
    if args.server and (args.read is not None or args.write is not None):
        p.error("--read and --write only apply to --client")

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")

    if args.server:
        return cmd_server(args)
    return cmd_client(args)


if __name__ == "__main__":
    raise SystemExit(main())
