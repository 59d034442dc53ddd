import subprocess

import pytest

from qlinstall.adapters.host import HostFacts
from qlinstall.config.models import InstallerConfig
from qlinstall.prompt.gateway import PromptGateway
from qlinstall.provision.context import ProvisionContext


class DummyCP:
    def __init__(self, rc=0, out="", err=""):
        self.returncode = rc
        self.stdout = out
        self.stderr = err


class FakeShell:
    def __init__(self):
        self.calls = []

    def __call__(self, argv, **kw):
        self.calls.append(list(argv))
        return DummyCP(0)


OS_RELEASE = 'NAME="Ubuntu"\nID=ubuntu\nVERSION_ID="{version}"\nPRETTY_NAME="Ubuntu {version} LTS"\n'


@pytest.fixture
def shell(monkeypatch):
    fake = FakeShell()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(HostFacts, "is_root", staticmethod(lambda: True))


@pytest.fixture
def host_root(tmp_path):
    """A fake filesystem root: everything the installer touches lives under it."""
    root = tmp_path / "host"
    for d in ("etc/samba", "etc/sudoers.d", "etc/supervisor/conf.d", "home", "root/.ssh", "var/log", "scripts"):
        (root / d).mkdir(parents=True)
    (root / "etc/os-release").write_text(OS_RELEASE.format(version="22.04"))
    (root / "etc/samba/smb.conf").write_text("[global]\n   workgroup = WORKGROUP\n")
    (root / "etc/sudoers").write_text("root ALL=(ALL:ALL) ALL\n")
    return root


@pytest.fixture
def config(host_root):
    def build(**overrides):
        data = {
            "paths": {
                "state_dir": str(host_root / "var/lib/qlinstall"),
                "scripts_dir": str(host_root / "scripts"),
                "os_release": str(host_root / "etc/os-release"),
                "root_authorized_keys": str(host_root / "root/.ssh/authorized_keys"),
                "sudoers": str(host_root / "etc/sudoers"),
                "sudoers_dir": str(host_root / "etc/sudoers.d"),
                "home_root": str(host_root / "home"),
                "legacy_install_log": str(host_root / "var/log/quake_live_install.log"),
                "legacy_venv": str(host_root / "opt/qlserver-venv"),
            },
            "samba": {"conf_path": str(host_root / "etc/samba/smb.conf")},
            "supervisor": {
                "conf_dir": str(host_root / "etc/supervisor/conf.d"),
                "stdout_log": str(host_root / "var/log/quake.out.log"),
                "stderr_log": str(host_root / "var/log/quake.err.log"),
            },
            "zeromq": {"build_dir": str(host_root / "tmp")},
        }
        for section, values in overrides.items():
            if isinstance(values, dict):
                data.setdefault(section, {}).update(values)
            else:
                data[section] = values
        return InstallerConfig.model_validate(data)

    return build


@pytest.fixture
def make_ctx(config):
    def build(answers=None, *, dry_run=False, cfg=None, **overrides):
        cfg = cfg or config(**overrides)
        prompts = PromptGateway(answers=answers or {}, interactive=False)
        return ProvisionContext.build(cfg, prompts, dry_run=dry_run, state_dir=cfg.paths.state_dir)

    return build
