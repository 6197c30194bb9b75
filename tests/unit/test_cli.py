"""Tests for the fsmo-orchestrator CLI.

Tests:
- --help and action parsing
- --query KEY=value output
- exit codes for config, directory, store and notification failures
- status and multi-DC status rendering
"""

from __future__ import annotations

import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from fsmo_orchestrator import __version__, cli
from fsmo_orchestrator.core import ALL_ROLES, FsmoRole, RoleOutcome
from fsmo_orchestrator.errors import DirectoryError, StoreError
from fsmo_orchestrator.orchestrator import NodeStatus, PassReport, RoleReport, StatusReport
from fsmo_orchestrator.store.records import PriorityRecord, SeizureLock

TS = datetime(2024, 1, 15, 10, 30, 0).timestamp()


class FakeOrchestrator:
    """Stands in for Orchestrator; each action returns or raises as scripted."""

    def __init__(self, node: str = "dc2", error: Exception | None = None) -> None:
        self.node = node
        self.error = error
        self.holders = dict.fromkeys(ALL_ROLES, "dc1")
        self.holders[FsmoRole.PDC] = "dc2"
        self.notify_ok = True
        self.transfer_result = node
        self.calls: list[tuple[str, Any]] = []

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    def query_holders(self) -> dict[FsmoRole, str]:
        self._check()
        return self.holders

    def transfer_role(self, role: FsmoRole) -> str:
        self._check()
        self.calls.append(("transfer", role))
        self.holders[role] = self.transfer_result
        return self.transfer_result

    def notify_services(self) -> bool:
        self.calls.append(("notify", None))
        return self.notify_ok

    def run_pass(self, *, notify: bool = True) -> PassReport:
        self._check()
        self.calls.append(("run_pass", notify))
        report = PassReport(
            node=self.node, started_at=TS, nodes=("dc1", "dc2"), holders=self.holders
        )
        report.roles.append(
            RoleReport(FsmoRole.RID, RoleOutcome.SEIZED, "dc1", "seized", target="dc2")
        )
        report.notified = notify
        return report

    def status(self, *, probe: bool = True) -> StatusReport:
        self._check()
        record = PriorityRecord(
            node="dc2", general=20, roles=dict.fromkeys(ALL_ROLES, 20), last_seen=TS
        )
        return StatusReport(
            node=self.node,
            holders=self.holders,
            nodes=[
                NodeStatus("dc1", False, None, tuple(r for r in ALL_ROLES if r != FsmoRole.PDC)),
                NodeStatus("dc2", True, record, (FsmoRole.PDC,)),
            ],
            locks=[SeizureLock(FsmoRole.RID, "dc2", int(TS))],
            default_priority=50,
        )

    def init(self) -> PriorityRecord:
        self._check()
        return PriorityRecord(node=self.node, general=50, roles={}, last_seen=TS)


@pytest.fixture
def fsmo_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("FSMO_DOMAIN", "example.local")
    monkeypatch.setenv("FSMO_NODE_NAME", "dc2")
    monkeypatch.setenv("FSMO_STORE_DIR", str(tmp_path / "fsmo-configs"))
    monkeypatch.setenv("FSMO_STATE_PATH", "")


@pytest.fixture
def fake_orch(monkeypatch: pytest.MonkeyPatch, fsmo_env: None) -> FakeOrchestrator:
    orch = FakeOrchestrator()
    monkeypatch.setattr(cli.Orchestrator, "from_config", lambda config: orch)
    return orch


class TestCLIHelp:
    def test_cli_help_exits_zero(self) -> None:
        result = subprocess.run(
            [sys.executable, "-m", "fsmo_orchestrator.cli", "--help"],
            capture_output=True,
            text=True,
            cwd=Path(__file__).parent.parent.parent,
            env={"PYTHONPATH": "src"},
            check=False,
        )
        assert result.returncode == 0
        assert "--multi-dc-status" in result.stdout

    def test_actions_are_exclusive(self) -> None:
        with pytest.raises(SystemExit) as ei:
            cli.build_parser().parse_args(["--status", "--query"])
        assert ei.value.code == 2

    def test_version_uses_package_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as ei:
            cli.build_parser().parse_args(["--version"])
        assert ei.value.code == 0
        assert capsys.readouterr().out.strip() == f"fsmo-orchestrator {__version__}"

    def test_default_action_is_orchestrate(self) -> None:
        assert cli.build_parser().parse_args([]).action == "orchestrate"
        assert cli.build_parser().parse_args(["--auto-seize"]).action == "auto_seize"


class TestQuery:
    def test_format_query(self) -> None:
        holders = {
            FsmoRole.PDC: "dc2",
            FsmoRole.RID: "dc1",
            FsmoRole.INFRASTRUCTURE: "dc2",
            FsmoRole.SCHEMA: "dc1",
            FsmoRole.DOMAIN_NAMING: "dc2",
        }
        assert cli.format_query("dc2", holders) == [
            "THIS_SERVER=dc2",
            "PDC_OWNER=dc2",
            "RID_OWNER=dc1",
            "INFRA_OWNER=dc2",
            "SCHEMA_OWNER=dc1",
            "NAMING_OWNER=dc2",
            "HELD_ROLES=PDC INFRASTRUCTURE DOMAIN_NAMING",
            "PDC_ROLE=true",
        ]

    def test_format_query_holds_nothing(self) -> None:
        lines = cli.format_query("dc3", {FsmoRole.PDC: "dc1"})
        assert "HELD_ROLES=" in lines
        assert "PDC_ROLE=false" in lines
        assert "RID_OWNER=unknown" in lines

    def test_main_query(
        self, fake_orch: FakeOrchestrator, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(["--query"]) == cli.EXIT_OK
        out = capsys.readouterr().out.splitlines()
        assert out[0] == "THIS_SERVER=dc2"
        assert "PDC_ROLE=true" in out


class TestExitCodes:
    def test_config_error(
        self, fsmo_env: None, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("FSMO_LOCK_TIMEOUT_S", "soon")
        assert cli.main(["--query"]) == cli.EXIT_CONFIG
        assert "FSMO_LOCK_TIMEOUT_S" in caplog.text

    def test_directory_error(self, fake_orch: FakeOrchestrator) -> None:
        fake_orch.error = DirectoryError("query", "exit 1: no LDAP")
        assert cli.main(["--status"]) == cli.EXIT_DIRECTORY

    def test_store_error(self, fake_orch: FakeOrchestrator) -> None:
        fake_orch.error = StoreError("mkdir", "/sysvol/fsmo-configs", "Permission denied")
        assert cli.main(["--init"]) == cli.EXIT_STORE

    def test_notify_failure(self, fake_orch: FakeOrchestrator) -> None:
        fake_orch.notify_ok = False
        assert cli.main(["--orchestrate-only"]) == cli.EXIT_NOTIFY
        assert fake_orch.calls == [("notify", None)]


class TestActions:
    def test_orchestrate_notifies(
        self, fake_orch: FakeOrchestrator, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main([]) == cli.EXIT_OK
        assert fake_orch.calls == [("run_pass", True)]
        out = capsys.readouterr().out
        assert "seized -> dc2 (seized)" in out
        assert "Seized: RID" in out
        assert "Dependent services notified: yes" in out

    def test_auto_seize_skips_notification(self, fake_orch: FakeOrchestrator) -> None:
        assert cli.main(["--auto-seize"]) == cli.EXIT_OK
        assert fake_orch.calls == [("run_pass", False)]

    def test_transfer(
        self, fake_orch: FakeOrchestrator, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(["--transfer", "rid"]) == cli.EXIT_OK
        assert fake_orch.calls == [("transfer", FsmoRole.RID)]
        assert "RID holder: dc2" in capsys.readouterr().out

    def test_transfer_not_completed(self, fake_orch: FakeOrchestrator) -> None:
        fake_orch.transfer_result = "dc1"
        assert cli.main(["--transfer", "SCHEMA"]) == cli.EXIT_DIRECTORY

    def test_transfer_unknown_role_rejected(self) -> None:
        with pytest.raises(SystemExit) as ei:
            cli.build_parser().parse_args(["--transfer", "BOGUS"])
        assert ei.value.code == 2

    def test_transfer_excludes_other_actions(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--transfer", "PDC", "--status"])

    def test_init(self, fake_orch: FakeOrchestrator, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["--init"]) == cli.EXIT_OK
        assert "Initialized dc2: general=50" in capsys.readouterr().out

    def test_status(self, fake_orch: FakeOrchestrator, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["--status"]) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert f"{'PDC':<15} dc2 (this server)" in out
        assert "services: chrony, isc-dhcp-server, samba-ad-dc" in out
        assert out.count("services: ") == len(ALL_ROLES)
        assert f"{'dc1':<15} UNREACHABLE" in out

    def test_multi_dc_status(
        self, fake_orch: FakeOrchestrator, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(["--multi-dc-status"]) == cli.EXIT_OK
        out = capsys.readouterr().out.splitlines()
        dc2 = next(line for line in out if line.strip().startswith("dc2"))
        assert "2024-01-15_10:30:00" in dc2
        assert "reachable" in dc2
        dc1 = next(line for line in out if line.strip().startswith("dc1"))
        assert dc1.rstrip().endswith("never")
        assert any("RID" in line and "holder=dc2" in line for line in out)
