import logging
import subprocess
from pathlib import Path

import pytest

from qlinstall.adapters.base import classify
from qlinstall.adapters.cron import CronAdapter, parse_hhmm
from qlinstall.adapters.host import HostFacts
from qlinstall.adapters.packages import AptPackageManager, PipInstaller
from qlinstall.adapters.samba import SambaShareConfigurator
from qlinstall.adapters.steam import SteamCmdClient, SteamTarget
from qlinstall.adapters.supervisor import ServiceSpec, SupervisorAdapter
from qlinstall.adapters.users import UserAccounts
from qlinstall.errors import ExternalToolError
from qlinstall.prompt.credentials import Credentials
from qlinstall.utils.execution import MASK, CommandRunner, ExecutionContext


class DummyCP:
    def __init__(self, rc=0, out="", err=""):
        self.returncode = rc
        self.stdout = out
        self.stderr = err


class FakeShell:
    """Replacement for subprocess.run; responses are matched on an argv prefix."""
    def __init__(self, responses=None):
        self.calls = []
        self.inputs = []
        self.responses = responses or []

    def __call__(self, argv, input=None, **kw):
        self.calls.append(list(argv))
        self.inputs.append(input)
        for prefix, cp in self.responses:
            if argv[: len(prefix)] == prefix:
                return cp(argv) if callable(cp) else cp
        return DummyCP(0)


@pytest.fixture
def shell(monkeypatch):
    fake = FakeShell()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


# ------------------------------------------------------------------ runner

def test_dry_run_skips_mutating_but_runs_queries(shell):
    runner = CommandRunner(ctx=ExecutionContext(dry_run=True))
    assert runner.run(["useradd", "x"]).returncode == 0
    runner.run(["dpkg-query", "-W", "x"], mutating=False)
    assert shell.calls == [["dpkg-query", "-W", "x"]]


def test_missing_binary_reports_127(monkeypatch):
    def missing(*a, **kw):
        raise FileNotFoundError("no such file: steamcmd")
    monkeypatch.setattr(subprocess, "run", missing)
    assert CommandRunner().run(["steamcmd"]).returncode == 127


@pytest.mark.parametrize("text, label", [
    ("FAILED login with result code Invalid Password", "auth_rejected"),
    ("Temporary failure in name resolution", "network_unreachable"),
    ("E: Unable to locate package libzmq5-dev", "not_found"),
    ("segmentation fault", "opaque"),
])
def test_classify(text, label):
    assert classify(text) == label


# ------------------------------------------------------------------ apt

def test_ensure_installed_only_installs_missing(shell):
    shell.responses = [
        (["dpkg-query", "-W", "-f=${Status}", "git"], DummyCP(0, "install ok installed")),
        (["dpkg-query"], DummyCP(1, "", "no packages found")),
    ]
    installed = AptPackageManager().ensure_installed(["git", "samba", "wget"])
    assert installed == ["samba", "wget"]
    assert shell.calls[-1] == ["apt-get", "-y", "install", "samba", "wget"]


def test_ensure_installed_failure_is_classified(shell):
    shell.responses = [
        (["dpkg-query"], DummyCP(1)),
        (["apt-get", "-y", "install"], DummyCP(100, "", "E: Unable to locate package libzmq5-dev")),
    ]
    with pytest.raises(ExternalToolError) as exc:
        AptPackageManager().ensure_installed("libzmq5-dev")
    assert exc.value.classification == "not_found"
    assert exc.value.returncode == 100


def test_install_optional_never_raises(shell, monkeypatch):
    monkeypatch.setattr(AptPackageManager, "has_command", staticmethod(lambda name: False))
    shell.responses = [
        (["dpkg-query"], DummyCP(1)),
        (["apt-get"], DummyCP(100, "", "E: broken")),
    ]
    assert AptPackageManager().install_optional("screen") is False


def test_pip_install_with_break_system_packages(shell):
    PipInstaller().install(["pyzmq"], break_system_packages=True)
    assert shell.calls[-1] == ["python3", "-m", "pip", "install", "--break-system-packages", "pyzmq"]


# ------------------------------------------------------------------ samba

def test_samba_add_share_is_idempotent_and_remove_only_touches_marked_block(tmp_path, shell):
    conf = tmp_path / "smb.conf"
    original = "[global]\n   workgroup = WORKGROUP\n;[homes]\n;   comment = stock example\n"
    conf.write_text(original)
    samba = SambaShareConfigurator(conf_path=conf)

    assert samba.add_share(None, {"comment": "Home Directories", "browseable": "yes"}, name="homes") is True
    assert samba.add_share("/var/www", {"comment": "WWW Directory"}) is True
    assert samba.add_share(None, {"comment": "again"}, name="homes") is False
    text = conf.read_text()
    assert text.count("\n[homes]\n") == 1
    assert "    path = /var/www" in text

    assert samba.remove_share("www") is True
    assert samba.remove_share("www") is False
    assert "[www]" not in conf.read_text()
    assert samba.remove_share("homes") is True
    assert conf.read_text() == original
    assert list(tmp_path.glob("smb.conf.backup.*"))


def test_samba_never_removes_hand_written_section(tmp_path, shell):
    conf = tmp_path / "smb.conf"
    conf.write_text("[www]\n   path = /srv/www\n")
    samba = SambaShareConfigurator(conf_path=conf)
    assert samba.add_share("/var/www", {}) is False
    assert samba.remove_share("www") is False
    assert conf.read_text() == "[www]\n   path = /srv/www\n"


def test_samba_password_is_piped_not_logged(shell):
    SambaShareConfigurator().set_password("qlserver", "s3cret")
    assert shell.calls[-1] == ["smbpasswd", "-a", "qlserver", "-s"]
    assert shell.inputs[-1] == "s3cret\ns3cret\n"
    assert all("s3cret" not in a for a in shell.calls[-1])


# ------------------------------------------------------------------ users

def test_create_user_pipes_password_to_chpasswd(shell, monkeypatch):
    monkeypatch.setattr(UserAccounts, "exists", lambda self, name: False)
    UserAccounts().create("qlserver", "pw", groups=["sudo"])
    assert shell.calls[0] == ["useradd", "-m", "-s", "/bin/bash", "qlserver"]
    assert ["usermod", "-a", "-G", "sudo", "qlserver"] in shell.calls
    assert shell.calls[-1] == ["chpasswd"]
    assert shell.inputs[-1] == "qlserver:pw\n"


def test_sudo_dropin_and_legacy_line_are_revoked(tmp_path, shell):
    sudoers = tmp_path / "sudoers"
    sudoers.write_text("root ALL=(ALL:ALL) ALL\nqlserver ALL = NOPASSWD: ALL\n")
    users = UserAccounts(sudoers=sudoers, sudoers_dir=tmp_path / "sudoers.d")

    users.grant_sudo("qlserver")
    dropin = tmp_path / "sudoers.d" / "qlserver"
    assert dropin.read_text() == "qlserver ALL=(ALL) NOPASSWD:ALL\n"
    assert shell.calls[-1][:2] == ["visudo", "-cf"]

    assert users.revoke_sudo("qlserver") is True
    assert not dropin.exists()
    assert sudoers.read_text() == "root ALL=(ALL:ALL) ALL\n"
    assert users.revoke_sudo("qlserver") is False


def test_invalid_sudoers_dropin_is_not_installed(tmp_path, shell):
    shell.responses = [(["visudo"], DummyCP(1, "", "syntax error"))]
    users = UserAccounts(sudoers=tmp_path / "sudoers", sudoers_dir=tmp_path / "sudoers.d")
    with pytest.raises(ExternalToolError):
        users.grant_sudo("qlserver")
    assert list((tmp_path / "sudoers.d").iterdir()) == []


def test_remove_missing_user_is_a_noop(tmp_path, shell, monkeypatch):
    monkeypatch.setattr(UserAccounts, "exists", lambda self, name: False)
    assert UserAccounts().remove("qlserver", home=tmp_path / "nohome") is False
    assert shell.calls == []


def test_remove_user_deletes_leftover_home(tmp_path, shell, monkeypatch):
    monkeypatch.setattr(UserAccounts, "exists", lambda self, name: True)
    home = tmp_path / "qlserver"
    (home / "steamcmd").mkdir(parents=True)
    assert UserAccounts().remove("qlserver", home=home) is True
    assert ["pkill", "-u", "qlserver"] in shell.calls
    assert ["userdel", "-r", "qlserver"] in shell.calls
    assert not home.exists()


def test_authorized_key_appended_once(tmp_path, shell):
    users = UserAccounts()
    key = "ssh-ed25519 AAAA test@host"
    users.install_authorized_key("root", key, home=tmp_path)
    users.install_authorized_key("root", key, home=tmp_path)
    assert (tmp_path / ".ssh" / "authorized_keys").read_text() == key + "\n"


# ------------------------------------------------------------------ host / cron

def test_read_os_release(tmp_path):
    f = tmp_path / "os-release"
    f.write_text('NAME="Ubuntu"\nID=ubuntu\nVERSION_ID="22.04"\nPRETTY_NAME="Ubuntu 22.04.4 LTS"\n')
    release = HostFacts().read_os_release(f)
    assert release.version_id == "22.04"
    assert release.is_ubuntu
    assert release.pretty_name == "Ubuntu 22.04.4 LTS"


def test_read_os_release_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        HostFacts().read_os_release(tmp_path / "nope")


def test_bad_timezone_is_not_found(shell):
    shell.responses = [(["timedatectl", "set-timezone"], DummyCP(1, "", "Failed to set time zone: Invalid or not installed time zone 'Mars/Base'"))]
    with pytest.raises(ExternalToolError) as exc:
        HostFacts().set_timezone("Mars/Base")
    assert exc.value.classification == "not_found"


@pytest.mark.parametrize("value, expected", [("06:40", (6, 40)), ("03 30", (3, 30)), ("23:59", (23, 59))])
def test_parse_hhmm(value, expected):
    assert parse_hhmm(value) == expected


@pytest.mark.parametrize("value", ["24:00", "6", "ab:cd", "12:60"])
def test_parse_hhmm_rejects(value):
    with pytest.raises(ValueError):
        parse_hhmm(value)


def test_set_daily_reboot_replaces_existing_line(shell):
    shell.responses = [(["crontab", "-l"], DummyCP(0, "0 1 * * * /usr/bin/backup\n10 3 * * * /sbin/shutdown -r now\n"))]
    entry = CronAdapter().set_daily_reboot(6, 40)
    assert entry == "40 6 * * * /sbin/shutdown -r now"
    assert shell.calls[-1] == ["crontab", "-"]
    assert shell.inputs[-1] == "0 1 * * * /usr/bin/backup\n40 6 * * * /sbin/shutdown -r now\n"


def test_clear_daily_reboot_without_crontab(shell):
    shell.responses = [(["crontab", "-l"], DummyCP(1, "", "no crontab for root"))]
    assert CronAdapter().clear_daily_reboot() is False
    assert ["crontab", "-"] not in shell.calls


# ------------------------------------------------------------------ supervisor

def test_register_and_deregister_service(tmp_path, shell):
    sup = SupervisorAdapter(conf_dir=tmp_path)
    spec = ServiceSpec(
        name="quakelive",
        command="/home/qlserver/steamcmd/steamapps/common/qlds/run_server_x64_minqlx.sh",
        user="qlserver",
        process_name="qzeroded",
        stdout_log="/var/log/quake.out.log",
        stderr_log="/var/log/quake.err.log",
    )
    path = sup.register_service(spec)
    text = path.read_text()
    assert path == tmp_path / "quakelive.conf"
    assert "[program:quakelive]" in text
    assert "user=qlserver" in text
    assert "autorestart=true" in text
    assert ["supervisorctl", "reread"] in shell.calls and ["supervisorctl", "update"] in shell.calls

    assert sup.deregister_service("quakelive") is True
    assert not path.exists()
    assert sup.deregister_service("quakelive") is False


# ------------------------------------------------------------------ steam

def _target(tmp_path: Path) -> SteamTarget:
    return SteamTarget(
        app_id=349090,
        install_dir=tmp_path / "qlds",
        steamcmd_dir=tmp_path / "steamcmd",
        run_as="qlserver",
        bootstrap_url="https://example.test/steamcmd_linux.tar.gz",
    )


def test_steam_fetch_orders_force_install_dir_before_login(tmp_path, shell, caplog, monkeypatch):
    monkeypatch.setattr(logging.getLogger("qlinstall"), "propagate", True)
    target = _target(tmp_path)
    target.steamcmd_dir.mkdir()
    (target.steamcmd_dir / "steamcmd.sh").touch()

    def download(argv):
        target.install_dir.mkdir()
        (target.install_dir / "run_server_x64.sh").touch()
        return DummyCP(0, "Success! App '349090' fully installed.")

    shell.responses = [(["runuser", "-u", "qlserver", "--", str(target.steamcmd_dir / "steamcmd.sh"), "+force_install_dir"], download)]
    creds = Credentials(steam_username="player", steam_password="hunter2")
    with caplog.at_level("DEBUG", logger="qlinstall"):
        SteamCmdClient().authenticate_and_fetch(creds, target)

    argv = shell.calls[-1]
    assert argv.index("+force_install_dir") < argv.index("+login")
    assert argv[argv.index("+app_update") + 1] == "349090"
    assert "hunter2" not in caplog.text
    assert MASK in caplog.text


def test_steam_rejected_login_is_auth_rejected_and_redacted(tmp_path, shell):
    target = _target(tmp_path)
    target.steamcmd_dir.mkdir()
    (target.steamcmd_dir / "steamcmd.sh").touch()
    shell.responses = [
        (["runuser", "-u", "qlserver", "--", str(target.steamcmd_dir / "steamcmd.sh"), "+force_install_dir"],
         DummyCP(5, "Logging in user 'player' [hunter2] to Steam Public...FAILED login with result code Invalid Password")),
    ]
    with pytest.raises(ExternalToolError) as exc:
        SteamCmdClient().authenticate_and_fetch(Credentials(steam_username="player", steam_password="hunter2"), target)
    assert exc.value.classification == "auth_rejected"
    assert "hunter2" not in str(exc.value)


def test_steam_missing_launcher_means_not_owned(tmp_path, shell):
    target = _target(tmp_path)
    target.steamcmd_dir.mkdir()
    (target.steamcmd_dir / "steamcmd.sh").touch()
    with pytest.raises(ExternalToolError) as exc:
        SteamCmdClient().authenticate_and_fetch(Credentials(steam_username="player", steam_password="pw"), target)
    assert exc.value.classification == "auth_rejected"
