"""
Tests for the command line client

These tests run memcluster.cli.main() against a fake server and check
what it prints and returns.

Run with: python -m pytest tests/test_cli.py -v
"""

import pytest

from memcluster.cli import main, parse_args


class TestParseArgs:
    """Test argument parsing."""

    def test_defaults(self):
        """Test default options."""
        args = parse_args(["--servers", "127.0.0.1:11211", "get", "k"])
        assert args.command == "get"
        assert args.key == "k"
        assert args.hash == "default"
        assert args.distribution == "consistent"
        assert args.namespace == ""

    def test_incr_default_offset(self):
        """Test incr offsets default to one."""
        args = parse_args(["incr", "hits"])
        assert args.offset == 1

    def test_bad_hash(self):
        """Test unknown hash names are rejected by argparse."""
        with pytest.raises(SystemExit):
            parse_args(["--hash", "sha1", "get", "k"])

    def test_command_required(self):
        """Test a sub-command must be given."""
        with pytest.raises(SystemExit):
            parse_args([])


@pytest.mark.integration
class TestMain:
    """Test running commands end to end."""

    def test_set_get(self, memcached, capsys):
        """Test set then get prints the raw value."""
        assert main(["--servers", memcached.address, "set", "greeting", "hello"]) == 0
        assert main(["--servers", memcached.address, "get", "greeting"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out == ["SUCCESS", "hello"]

    def test_get_missing(self, memcached, capsys):
        """Test a missing key exits with 1."""
        assert main(["--servers", memcached.address, "get", "nope"]) == 1
        assert "NOT_FOUND" in capsys.readouterr().err

    def test_mget(self, memcached, capsys):
        """Test mget prints one line per key found."""
        main(["--servers", memcached.address, "set", "a", "1"])
        main(["--servers", memcached.address, "set", "b", "2"])
        capsys.readouterr()
        assert main(["--servers", memcached.address, "mget", "a", "missing", "b"]) == 0
        assert capsys.readouterr().out.splitlines() == ["a 1", "b 2"]

    def test_counters(self, memcached, capsys):
        """Test incr and decr print the new value."""
        main(["--servers", memcached.address, "set", "n", "10"])
        main(["--servers", memcached.address, "incr", "n", "5"])
        main(["--servers", memcached.address, "decr", "n"])
        assert capsys.readouterr().out.splitlines() == ["SUCCESS", "15", "14"]

    def test_namespace(self, memcached):
        """Test --namespace prefixes keys."""
        main(["--servers", memcached.address, "--namespace", "app:", "set", "k", "v"])
        assert b"app:k" in memcached.data

    def test_stats(self, memcached, capsys):
        """Test stats prints a header and one row per stat."""
        assert main(["--servers", memcached.address, "stats"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == f"stat\t{memcached.address}"
        assert "pid\t4242" in lines

    def test_bad_server(self, capsys):
        """Test a malformed server list exits with 2."""
        assert main(["--servers", "localhost:11211", "get", "k"]) == 2
        assert "error" in capsys.readouterr().err

    def test_connection_failure(self, dead_server, capsys):
        """Test an unreachable server exits with 1."""
        assert main(["--servers", dead_server, "get", "k"]) == 1
        assert "error" in capsys.readouterr().err
