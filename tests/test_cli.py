"""Tests for the command-line entry point in main.py.

Covers:
- init registers participants and is safe to re-run
- invoke / query drive the lifecycle against a ledger file
- Ledger errors print "[!] code: message" and exit 1
- Participant specs are validated by argparse
- token mints a JWT the API accepts
"""

import json

import pytest

from auth.tokens import decode_access_token
from core.config import get_settings
from core.models import CallerContext, Role
from main import main


@pytest.fixture
def ledger(tmp_path, monkeypatch):
    """Point LEDGER_URL at a fresh SQLite file for the duration of a test."""
    monkeypatch.setenv("LEDGER_URL", f"sqlite:///{tmp_path / 'ledger.db'}")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _run(capsys, *argv: str) -> tuple[int, str, str]:
    code = main(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


class TestInit:
    def test_registers_participants(self, ledger, capsys) -> None:
        code, out, _ = _run(capsys, "init", "--participant", "regulator:Authority", "--participant", "mill:Manufacturer:cert")
        assert code == 0
        assert "2 participant(s)" in out

        code, out, _ = _run(capsys, "--identity", "regulator", "--role", "Authority", "query", "get_ecert", "mill")
        assert code == 0
        assert out.strip() == "cert"

    def test_rerun_is_safe(self, ledger, capsys) -> None:
        _run(capsys, "init", "--participant", "regulator:Authority")
        _run(capsys, "--identity", "regulator", "--role", "Authority", "invoke", "create_coil", "AB1234567")
        assert _run(capsys, "init")[0] == 0
        code, out, _ = _run(capsys, "--identity", "regulator", "--role", "Authority", "query", "get_coils")
        assert [r["v5cID"] for r in json.loads(out)] == ["AB1234567"]

    @pytest.mark.parametrize("spec", ["mill", ":Manufacturer", "mill:Pirate"])
    def test_bad_participant_spec(self, ledger, spec: str) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["init", "--participant", spec])
        assert exc_info.value.code == 2


class TestInvokeQuery:
    def test_create_then_details(self, ledger, capsys) -> None:
        _run(capsys, "init", "--participant", "regulator:Authority")
        code, out, _ = _run(capsys, "--identity", "regulator", "--role", "Authority", "invoke", "create_coil", "AB1234567")
        assert code == 0
        assert out.strip() == "ok"

        code, out, _ = _run(
            capsys, "--identity", "regulator", "--role", "Authority", "query", "get_coil_details", "AB1234567"
        )
        assert code == 0
        assert json.loads(out)["status"] == 0

    def test_ping(self, ledger, capsys) -> None:
        _run(capsys, "init")
        code, out, _ = _run(capsys, "--identity", "x", "--role", "PrivateEntity", "query", "ping")
        assert code == 0
        assert out.strip() == "Hello, world!"

    def test_ledger_error_exits_1(self, ledger, capsys) -> None:
        _run(capsys, "init")
        code, _, err = _run(capsys, "--identity", "mill", "--role", "Manufacturer", "invoke", "create_coil", "AB1234567")
        assert code == 1
        assert "[!] permission_denied:" in err

    def test_unknown_function(self, ledger, capsys) -> None:
        _run(capsys, "init")
        code, _, err = _run(capsys, "--identity", "mill", "--role", "Manufacturer", "invoke", "fly")
        assert code == 1
        assert "unknown_operation" in err

    def test_caller_required(self, ledger) -> None:
        with pytest.raises(SystemExit):
            main(["query", "get_coils"])


class TestToken:
    def test_mints_decodable_token(self, capsys) -> None:
        code, out, _ = _run(capsys, "--identity", "mill", "--role", "Manufacturer", "token")
        assert code == 0
        assert decode_access_token(out.strip()) == CallerContext("mill", Role.MANUFACTURER)
