from __future__ import annotations

import argparse

import pytest

from tftp import cli


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["--server", "--client"],
        ["--client"],
        ["--client", "--read", "a", "--write", "b"],
        ["--server", "--read", "a"],
        ["--client", "--remote", "host:notaport", "--read", "a"],
        ["--server", "--port", "70000"],
        ["--server", "--port", "-1"],
        ["--client", "--remote", "127.0.0.1:70000", "--write", "f"],
        ["--server", "--timeout-ms", "0"],
        ["--client", "--read", "a", "--timeout-ms", "-5"],
        ["--server", "--max-retries", "-1"],
    ],
)
def test_invalid_arguments_are_usage_errors(argv):
    with pytest.raises(SystemExit) as info:
        cli.main(argv)
    assert info.value.code == 2


def test_parse_remote():
    assert cli.parse_remote("10.0.0.5:6969") == ("10.0.0.5", 6969)
    assert cli.parse_remote("10.0.0.5") == ("10.0.0.5", 69)
    assert cli.parse_remote(":6969") == ("127.0.0.1", 6969)
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_remote("h:x")
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_remote("h:70000")


def test_port_number():
    assert cli.port_number("0") == 0
    assert cli.port_number("65535") == 65535
    for bad in ("65536", "-1", "sixty"):
        with pytest.raises(argparse.ArgumentTypeError):
            cli.port_number(bad)


def test_client_read(serve, server_root, client_root):
    (server_root / "hello.txt").write_bytes(b"hello\n")
    server = serve(server_root)
    host, port = server.address

    rc = cli.main(
        [
            "--client",
            "--remote",
            f"{host}:{port}",
            "--read",
            "hello.txt",
            "--root",
            str(client_root),
            "--listen-host",
            "127.0.0.1",
            "--timeout-ms",
            "500",
        ]
    )
    assert rc == 0
    assert (client_root / "hello.txt").read_bytes() == b"hello\n"


def test_client_write(serve, server_root, client_root):
    (client_root / "up.txt").write_bytes(b"u" * 700)
    server = serve(server_root)
    host, port = server.address

    rc = cli.main(
        ["--client", "--remote", f"{host}:{port}", "--write", "up.txt", "--root", str(client_root)]
    )
    assert rc == 0
    assert server.drain(5)
    assert (server_root / "up.txt").read_bytes() == b"u" * 700


def test_client_failure_exit_status(serve, server_root, client_root):
    server = serve(server_root)
    host, port = server.address

    rc = cli.main(
        ["--client", "--remote", f"{host}:{port}", "--read", "missing", "--root", str(client_root)]
    )
    assert rc == 1
    assert list(client_root.iterdir()) == []
