import os
import sys
import getpass
import textwrap

from dotenv import load_dotenv

from .config import collect_config
from .console import configure_logging, print_info, print_success, print_error
from .errors import DeployError, ProvisioningError
from .generate_app import write_application
from .generate_nginx import register_site, check_domain_resolution, issue_certificate
from .generate_service import register_service
from .provision import (
    ProjectLayout, ensure_user, install_packages, configure_firewall, create_project_skeleton
)
from .runtime import build_runtime
from .status_hook import hook_url_from_env, notify


def check_root():
    if os.geteuid() != 0:
        print("Run with sudo/root.", file=sys.stderr)
        sys.exit(1)


def _issue_tls(config):
    check_domain_resolution(config.domain)
    issue_certificate(config)


def build_steps(config, layout):
    """Ordered (step, description, action) triples for one install run."""
    steps = [
        ("user", f"Ensuring Linux user '{config.app_user}'",
         lambda: ensure_user(config.app_user)),
        ("system_packages", "Installing system packages",
         install_packages),
        ("firewall", "Configuring firewall",
         configure_firewall),
        ("project_skeleton", "Creating project directory",
         lambda: create_project_skeleton(layout, config.app_user)),
        ("application", "Writing application and secrets",
         lambda: write_application(layout, config)),
        ("virtualenv", "Building virtualenv",
         lambda: build_runtime(layout, config.app_user)),
        ("systemd", "Registering systemd service",
         lambda: register_service(config, layout)),
        ("nginx", "Configuring nginx reverse proxy",
         lambda: register_site(config)),
    ]
    if config.want_tls:
        steps.append(("tls", "Issuing HTTPS certificate", lambda: _issue_tls(config)))
    return steps


def deploy(config, layout=None, hook_url=""):
    layout = layout or ProjectLayout.for_config(config)
    steps = build_steps(config, layout)
    total = len(steps)

    notify(hook_url, config, "provisioning", "starting", f"Beginning {config.instance} setup")
    for index, (step, description, action) in enumerate(steps, start=1):
        print_info(f"[{index}/{total}] {description}...")
        notify(hook_url, config, "provisioning", step, description)
        try:
            action()
        except DeployError as e:
            e.step = step
            raise
        except OSError as e:
            error = ProvisioningError(f"{description} failed: {e}")
            error.step = step
            raise error from e

    notify(hook_url, config, "completed", "done", f"{config.instance} deployed at {config.url}")
    return layout


def generate_summary(config, log_file=None):
    tokens = {
        "__INSTANCE__": config.instance,
        "__URL__": config.url,
        "__APP_USER__": config.app_user,
        "__PORT__": str(config.port),
        "__API_GATE__": "login required" if config.require_auth_on_api else "open to any caller",
        "__LOG_FILE__": log_file or "console only",
    }
    summary_template = textwrap.dedent("""\

        ✅  '__INSTANCE__' deployed at __URL__
           • Linux user: __APP_USER__
           • Gunicorn port: __PORT__
           • Password gate enforced ✔
           • FLASK_SECRET_KEY stored in .env
           • /api/chat: __API_GATE__
           • Setup log: __LOG_FILE__
    """)
    final_summary = summary_template
    for token, value in tokens.items():
        final_summary = final_summary.replace(token, value)
    return final_summary


def main(input_fn=input, secret_fn=getpass.getpass):
    load_dotenv()
    check_root()
    log_file = configure_logging()
    hook_url = hook_url_from_env()

    config = None
    try:
        config = collect_config(input_fn=input_fn, secret_fn=secret_fn)
        config.validate()
        deploy(config, hook_url=hook_url)
    except DeployError as e:
        print_error(str(e))
        notify(hook_url, config, "failed", e.step or "config", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        print_error("Aborted by operator")
        sys.exit(130)

    print_success(f"{config.instance} is live")
    print(generate_summary(config, log_file))
