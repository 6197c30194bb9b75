"""Tests for the samba-tool adapter: output parsing and command handling."""

from __future__ import annotations

import subprocess
from typing import Any

import pytest

from fsmo_orchestrator.core import FsmoRole
from fsmo_orchestrator.directory.samba import (
    DC_COMPUTER_FILTER,
    SambaDirectoryClient,
    holder_from_dn,
    parse_computer_list,
    parse_fsmo_show,
)
from fsmo_orchestrator.errors import DirectoryError, DirectoryTimeoutError

SITE = "CN=Servers,CN=Default-First-Site-Name,CN=Sites,CN=Configuration,DC=example,DC=local"

FSMO_SHOW = f"""\
SchemaMasterRole owner: CN=NTDS Settings,CN=DC1,{SITE}
InfrastructureMasterRole owner: CN=NTDS Settings,CN=DC2,{SITE}
RidAllocationMasterRole owner: CN=NTDS Settings,CN=DC1,{SITE}
PdcEmulationMasterRole owner: CN=NTDS Settings,CN=DC3,{SITE}
DomainNamingMasterRole owner: CN=NTDS Settings,CN=DC1,{SITE}
DomainDnsZonesMasterRole owner: CN=NTDS Settings,CN=DC9,{SITE}
ForestDnsZonesMasterRole owner: CN=NTDS Settings,CN=DC9,{SITE}
"""


class FakeRunner:
    """Stands in for subprocess.run; records commands, returns scripted results."""

    def __init__(
        self,
        stdout: str = "",
        returncode: int = 0,
        stderr: str = "",
        raises: BaseException | None = None,
    ) -> None:
        self.stdout = stdout
        self.returncode = returncode
        self.stderr = stderr
        self.raises = raises
        self.commands: list[list[str]] = []
        self.kwargs: dict[str, Any] = {}

    def __call__(self, cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.commands.append(cmd)
        self.kwargs = kwargs
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


class TestParsing:
    def test_parse_fsmo_show(self) -> None:
        assert parse_fsmo_show(FSMO_SHOW) == {
            FsmoRole.SCHEMA: "dc1",
            FsmoRole.INFRASTRUCTURE: "dc2",
            FsmoRole.RID: "dc1",
            FsmoRole.PDC: "dc3",
            FsmoRole.DOMAIN_NAMING: "dc1",
        }

    def test_dns_zone_roles_ignored(self) -> None:
        assert "dc9" not in parse_fsmo_show(FSMO_SHOW).values()

    def test_holder_is_cn_after_ntds_settings(self) -> None:
        assert holder_from_dn(f"CN=NTDS Settings,CN=DC-West,{SITE}") == "dc-west"
        assert holder_from_dn("CN=DC1,OU=Domain Controllers,DC=example,DC=local") is None

    def test_unparseable_dn_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        holders = parse_fsmo_show("PdcEmulationMasterRole owner: garbage\n")
        assert holders == {}
        assert "Unparseable PDC owner DN" in caplog.text

    def test_noise_lines_ignored(self) -> None:
        output = "WARNING: something\n\n" + FSMO_SHOW
        assert len(parse_fsmo_show(output)) == 5

    def test_parse_computer_list(self) -> None:
        output = "DC1$\nDC2$\n\ndc1$\nDC3.example.local\n"
        assert parse_computer_list(output) == ["dc1", "dc2", "dc3"]


class TestClientQuery:
    def test_query_returns_holders(self) -> None:
        runner = FakeRunner(stdout=FSMO_SHOW)
        client = SambaDirectoryClient("dc1", runner=runner, timeout_s=15)
        assert client.query()[FsmoRole.PDC] == "dc3"
        assert runner.commands == [["samba-tool", "fsmo", "show"]]
        assert runner.kwargs["timeout"] == 15
        assert runner.kwargs["check"] is False

    def test_missing_role_is_error(self) -> None:
        partial = "\n".join(FSMO_SHOW.splitlines()[:3])
        client = SambaDirectoryClient("dc1", runner=FakeRunner(stdout=partial))
        with pytest.raises(DirectoryError, match="no holder reported for PDC, DOMAIN_NAMING"):
            client.query()

    def test_nonzero_exit_reports_last_stderr_line(self) -> None:
        runner = FakeRunner(returncode=255, stderr="trace\nERROR: LDAP connection refused\n")
        client = SambaDirectoryClient("dc1", runner=runner)
        with pytest.raises(DirectoryError, match="exit 255: ERROR: LDAP connection refused") as ei:
            client.query()
        assert ei.value.op == "query"

    def test_timeout(self) -> None:
        runner = FakeRunner(raises=subprocess.TimeoutExpired(["samba-tool"], 60))
        client = SambaDirectoryClient("dc1", runner=runner, timeout_s=60)
        with pytest.raises(DirectoryTimeoutError, match="timed out after 60s"):
            client.query()

    def test_missing_binary(self) -> None:
        runner = FakeRunner(raises=FileNotFoundError("samba-tool"))
        with pytest.raises(DirectoryError, match="directory query failed"):
            SambaDirectoryClient("dc1", runner=runner).query()

    def test_sudo_prefix(self) -> None:
        runner = FakeRunner(stdout=FSMO_SHOW)
        SambaDirectoryClient("dc1", use_sudo=True, runner=runner).query()
        assert runner.commands[0][:3] == ["sudo", "-n", "samba-tool"]


class TestClientSeize:
    def test_seize_local(self) -> None:
        runner = FakeRunner()
        client = SambaDirectoryClient("DC2.example.local", runner=runner)
        client.seize(FsmoRole.DOMAIN_NAMING, "dc2")
        assert runner.commands == [["samba-tool", "fsmo", "seize", "--role=naming", "--force"]]

    def test_seize_remote_refused(self) -> None:
        runner = FakeRunner()
        client = SambaDirectoryClient("dc2", runner=runner)
        with pytest.raises(DirectoryError, match="only seize onto the local DC"):
            client.seize(FsmoRole.PDC, "dc3")
        assert runner.commands == []

    def test_seize_failure(self) -> None:
        client = SambaDirectoryClient("dc2", runner=FakeRunner(returncode=1, stdout="denied"))
        with pytest.raises(DirectoryError, match="directory seize failed: exit 1: denied"):
            client.seize(FsmoRole.RID, "dc2")

    def test_transfer(self) -> None:
        runner = FakeRunner()
        SambaDirectoryClient("dc2", runner=runner).transfer(FsmoRole.INFRASTRUCTURE)
        assert runner.commands == [["samba-tool", "fsmo", "transfer", "--role=infrastructure"]]


def test_list_domain_controllers() -> None:
    runner = FakeRunner(stdout="DC1$\nDC2$\n")
    assert SambaDirectoryClient("dc1", runner=runner).list_domain_controllers() == ["dc1", "dc2"]
    assert runner.commands[0][-1] == f"--filter={DC_COMPUTER_FILTER}"
