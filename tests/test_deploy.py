import pytest

import deploy_friendgpt
from deploy_friendgpt.errors import ConfigError, ProvisioningError
from deploy_friendgpt.provision import ProjectLayout


STEP_FUNCTIONS = [
    "ensure_user", "install_packages", "configure_firewall", "create_project_skeleton",
    "write_application", "build_runtime", "register_service", "register_site",
    "check_domain_resolution", "issue_certificate",
]


@pytest.fixture()
def steps(monkeypatch):
    """Replace every provisioning step with a recorder of its name."""
    called = []
    for name in STEP_FUNCTIONS:
        monkeypatch.setattr(deploy_friendgpt, name,
                            lambda *a, _name=name, **k: called.append(_name))
    notes = []
    monkeypatch.setattr(deploy_friendgpt, "notify",
                        lambda hook_url, config, status, step, message: notes.append((status, step)))
    return called, notes


def test_steps_run_in_order_with_tls(steps, deploy_config, tmp_path):
    called, notes = steps

    deploy_friendgpt.deploy(deploy_config, layout=ProjectLayout(tmp_path))

    assert called == STEP_FUNCTIONS
    assert notes[0] == ("provisioning", "starting")
    assert notes[-1] == ("completed", "done")


def test_tls_steps_skipped_when_not_requested(steps, deploy_config, tmp_path):
    called, _ = steps
    deploy_config.want_tls = False

    deploy_friendgpt.deploy(deploy_config, layout=ProjectLayout(tmp_path))

    assert called == STEP_FUNCTIONS[:-2]


def test_failure_aborts_remaining_steps(steps, monkeypatch, deploy_config, tmp_path):
    called, notes = steps

    def broken(*args, **kwargs):
        raise ProvisioningError("apt-get exploded")

    monkeypatch.setattr(deploy_friendgpt, "install_packages", broken)

    with pytest.raises(ProvisioningError) as excinfo:
        deploy_friendgpt.deploy(deploy_config, layout=ProjectLayout(tmp_path))

    assert called == ["ensure_user"]
    assert excinfo.value.step == "system_packages"
    assert notes[-1] == ("provisioning", "system_packages")


def test_file_write_error_becomes_provisioning_error(steps, monkeypatch, deploy_config, tmp_path):
    called, _ = steps

    def unwritable(*args, **kwargs):
        raise PermissionError(13, "Permission denied", "/etc/systemd/system/eligpt.service")

    monkeypatch.setattr(deploy_friendgpt, "register_service", unwritable)

    with pytest.raises(ProvisioningError, match="Permission denied") as excinfo:
        deploy_friendgpt.deploy(deploy_config, layout=ProjectLayout(tmp_path))

    assert excinfo.value.step == "systemd"
    assert isinstance(excinfo.value.__cause__, PermissionError)
    assert "register_site" not in called


def test_main_requires_root(monkeypatch, capsys):
    monkeypatch.setattr(deploy_friendgpt.os, "geteuid", lambda: 1000)
    monkeypatch.setattr(deploy_friendgpt, "collect_config",
                        lambda **k: pytest.fail("prompted before privilege check"))

    with pytest.raises(SystemExit) as excinfo:
        deploy_friendgpt.main()

    assert excinfo.value.code == 1
    assert "Run with sudo/root." in capsys.readouterr().err


def test_main_exits_nonzero_on_step_failure(monkeypatch, deploy_config, tmp_path):
    monkeypatch.setattr(deploy_friendgpt.os, "geteuid", lambda: 0)
    monkeypatch.setenv("DEPLOY_LOG_FILE", str(tmp_path / "setup.log"))
    monkeypatch.delenv("DEPLOY_HOOK_URL", raising=False)
    monkeypatch.setattr(deploy_friendgpt, "collect_config", lambda **k: deploy_config)

    def broken(config, hook_url=""):
        raise ProvisioningError("nginx -t failed")

    monkeypatch.setattr(deploy_friendgpt, "deploy", broken)

    with pytest.raises(SystemExit) as excinfo:
        deploy_friendgpt.main()

    assert excinfo.value.code == 1


def test_main_prints_summary(monkeypatch, deploy_config, tmp_path, capsys):
    monkeypatch.setattr(deploy_friendgpt.os, "geteuid", lambda: 0)
    monkeypatch.setenv("DEPLOY_LOG_FILE", str(tmp_path / "setup.log"))
    monkeypatch.setattr(deploy_friendgpt, "collect_config", lambda **k: deploy_config)
    monkeypatch.setattr(deploy_friendgpt, "deploy", lambda config, hook_url="": None)

    deploy_friendgpt.main()

    out = capsys.readouterr().out
    assert "'eligpt' deployed at https://eli.example.com" in out
    assert "Linux user: eli" in out
    assert "Gunicorn port: 5123" in out
    assert "Password gate enforced" in out


def test_summary_for_plain_http(deploy_config):
    deploy_config.want_tls = False

    summary = deploy_friendgpt.generate_summary(deploy_config)

    assert "deployed at http://eli.example.com" in summary
    assert "/api/chat: open to any caller" in summary
    assert "Setup log: console only" in summary
    assert "__" not in summary


@pytest.fixture()
def as_root(monkeypatch, tmp_path):
    monkeypatch.setattr(deploy_friendgpt.os, "geteuid", lambda: 0)
    monkeypatch.setenv("DEPLOY_LOG_FILE", str(tmp_path / "setup.log"))
    monkeypatch.setenv("DEPLOY_HOOK_URL", "https://hooks.example.com")
    reports = []
    monkeypatch.setattr(deploy_friendgpt, "notify",
                        lambda hook_url, config, status, step, message:
                        reports.append((hook_url, config, status, step, message)))
    return reports


def test_main_reports_invalid_config_to_hook(as_root, monkeypatch, deploy_config):
    deploy_config.domain = "localhost"
    monkeypatch.setattr(deploy_friendgpt, "collect_config", lambda **k: deploy_config)
    monkeypatch.setattr(deploy_friendgpt, "deploy",
                        lambda config, hook_url="": pytest.fail("deployed an invalid config"))

    with pytest.raises(SystemExit) as excinfo:
        deploy_friendgpt.main()

    assert excinfo.value.code == 1
    assert [(r[0], r[2], r[3]) for r in as_root] == [
        ("https://hooks.example.com", "failed", "config"),
    ]
    assert "Invalid domain" in as_root[0][4]


def test_main_reports_prompt_failure_without_config(as_root, monkeypatch):
    def bad_port(**kwargs):
        raise ConfigError("Invalid port number: fifty")

    monkeypatch.setattr(deploy_friendgpt, "collect_config", bad_port)

    with pytest.raises(SystemExit):
        deploy_friendgpt.main()

    assert [(r[1], r[2], r[3]) for r in as_root] == [(None, "failed", "config")]


def test_main_reports_failing_step_once(as_root, monkeypatch, deploy_config, tmp_path):
    monkeypatch.setattr(deploy_friendgpt, "collect_config", lambda **k: deploy_config)
    for name in STEP_FUNCTIONS:
        monkeypatch.setattr(deploy_friendgpt, name, lambda *a, **k: None)

    def broken(*args, **kwargs):
        raise ProvisioningError("nginx -t failed")

    monkeypatch.setattr(deploy_friendgpt, "register_site", broken)
    monkeypatch.setattr(deploy_friendgpt.ProjectLayout, "for_config",
                        classmethod(lambda cls, config: cls(tmp_path)))

    with pytest.raises(SystemExit) as excinfo:
        deploy_friendgpt.main()

    assert excinfo.value.code == 1
    failed = [(r[2], r[3], r[4]) for r in as_root if r[2] == "failed"]
    assert failed == [("failed", "nginx", "nginx -t failed")]
