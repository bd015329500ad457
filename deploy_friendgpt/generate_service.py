import textwrap
from pathlib import Path

from .console import print_build, print_success
from .errors import ProvisioningError
from .provision import run_command

SYSTEMD_DIR = Path("/etc/systemd/system")
GUNICORN_WORKERS = 3


def service_name(config):
    return f"{config.instance}.service"


def generate_service(config, layout):
    """Return the systemd unit text for the gunicorn process of one instance."""

    # ========== TOKEN DEFINITIONS ==========
    tokens = {
        "__INSTANCE__": config.instance,
        "__APP_USER__": config.app_user,
        "__PROJECT_DIR__": str(layout.root),
        "__VENV_BIN__": str(layout.venv_bin),
        "__GUNICORN__": str(layout.gunicorn),
        "__WORKERS__": str(GUNICORN_WORKERS),
        "__PORT__": str(config.port),
        "__REQUIRE_AUTH_ON_API__": "true" if config.require_auth_on_api else "false",
    }

    # ========== BASE TEMPLATE ==========
    unit_template = textwrap.dedent("""\
        [Unit]
        Description=__INSTANCE__ Chatbot
        After=network.target

        [Service]
        User=__APP_USER__
        WorkingDirectory=__PROJECT_DIR__
        Environment=PATH=__VENV_BIN__
        Environment=BOT_NAME=__INSTANCE__
        Environment=REQUIRE_AUTH_ON_API=__REQUIRE_AUTH_ON_API__
        ExecStart=__GUNICORN__ -w __WORKERS__ -b 127.0.0.1:__PORT__ "app:create_app()"
        Restart=always

        [Install]
        WantedBy=multi-user.target
    """)

    # ========== TOKEN REPLACEMENT ==========
    final_unit = unit_template
    for token, value in tokens.items():
        final_unit = final_unit.replace(token, value)
    return final_unit


def service_active(name):
    result = run_command(["systemctl", "is-active", name], check=False, capture=True)
    return (result.stdout or "").strip() == "active"


def register_service(config, layout, systemd_dir=SYSTEMD_DIR):
    """Write the unit, then reload, enable and restart it so a rerun picks up changes."""
    name = service_name(config)
    unit_path = Path(systemd_dir) / name
    print_build(f"Writing systemd unit {unit_path}")
    unit_path.write_text(generate_service(config, layout))

    run_command(["systemctl", "daemon-reload"])
    run_command(["systemctl", "enable", name])
    run_command(["systemctl", "restart", name])

    if not service_active(name):
        raise ProvisioningError(f"Service {name} is not active; check 'journalctl -u {name}'")
    print_success(f"Service {name} running on 127.0.0.1:{config.port}")
    return unit_path
