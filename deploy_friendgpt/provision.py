import os
import pwd
import subprocess
from pathlib import Path

from .console import print_info, print_build, print_success
from .errors import ProvisioningError

REQUIRED_PACKAGES = [
    "python3", "python3-venv", "python3-pip",
    "nginx", "git", "ufw",
    "certbot", "python3-certbot-nginx", "openssl",
]

FIREWALL_RULES = ["OpenSSH", "Nginx Full"]


class ProjectLayout:
    """Paths of one instance's project directory, /home/<user>/<instance> by default."""

    def __init__(self, root):
        self.root = Path(root)

    @classmethod
    def for_config(cls, config, home_root="/home"):
        return cls(Path(home_root) / config.app_user / config.instance)

    @property
    def requirements(self):
        return self.root / "requirements.txt"

    @property
    def env_file(self):
        return self.root / ".env"

    @property
    def app_source(self):
        return self.root / "app.py"

    @property
    def templates_dir(self):
        return self.root / "templates"

    @property
    def static_dir(self):
        return self.root / "static"

    @property
    def venv_dir(self):
        return self.root / "venv"

    @property
    def venv_bin(self):
        return self.venv_dir / "bin"

    @property
    def gunicorn(self):
        return self.venv_bin / "gunicorn"


def run_command(cmd, check=True, capture=False, env=None, cwd=None):
    """Run an external tool; a failure becomes ProvisioningError when check is set.

    Output goes straight to the terminal unless capture is requested.
    """
    try:
        return subprocess.run(
            cmd,
            check=check,
            capture_output=capture,
            text=True,
            env=env,
            cwd=cwd
        )
    except subprocess.CalledProcessError as e:
        raise ProvisioningError(
            f"Command failed with exit code {e.returncode}: {' '.join(cmd)}",
            cmd=cmd, returncode=e.returncode
        ) from e
    except FileNotFoundError as e:
        raise ProvisioningError(f"Command not found: {cmd[0]}", cmd=cmd) from e


def user_exists(user):
    try:
        pwd.getpwnam(user)
    except KeyError:
        return False
    return True


def ensure_user(user):
    if user_exists(user):
        print_info(f"Linux user '{user}' already exists")
        return False

    print_build(f"Creating Linux user '{user}'")
    run_command(["adduser", "--disabled-password", "--gecos", "", user])
    if not user_exists(user):
        raise ProvisioningError(f"User '{user}' still missing after adduser")
    print_success(f"Created Linux user '{user}'")
    return True


def package_installed(package):
    result = run_command(
        ["dpkg-query", "-W", "-f=${Status}", package],
        check=False, capture=True
    )
    return result.returncode == 0 and "install ok installed" in (result.stdout or "")


def missing_packages(packages=REQUIRED_PACKAGES):
    return [p for p in packages if not package_installed(p)]


def install_packages(packages=REQUIRED_PACKAGES):
    missing = missing_packages(packages)
    if not missing:
        print_info("All system packages already installed")
        return []

    print_info(f"Installing system packages: {' '.join(missing)}")
    env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
    run_command(["apt-get", "update"], env=env)
    run_command(["apt-get", "install", "-y"] + list(packages), env=env)

    still_missing = missing_packages(packages)
    if still_missing:
        raise ProvisioningError(f"Packages not installed: {' '.join(still_missing)}")
    print_success("System packages installed")
    return missing


def configure_firewall(rules=FIREWALL_RULES):
    for rule in rules:
        run_command(["ufw", "allow", rule])
    run_command(["ufw", "--force", "enable"])

    status = run_command(["ufw", "status"], check=False, capture=True)
    if "Status: active" not in (status.stdout or ""):
        raise ProvisioningError("Firewall is not active after 'ufw --force enable'")
    print_success("Firewall enabled (SSH, HTTP, HTTPS allowed)")


def chown_recursive(path, user):
    run_command(["chown", "-R", f"{user}:{user}", str(path)])


def create_project_skeleton(layout, user):
    for directory in (layout.root, layout.templates_dir, layout.static_dir):
        os.makedirs(directory, exist_ok=True)
    chown_recursive(layout.root, user)

    if not (layout.templates_dir.is_dir() and layout.static_dir.is_dir()):
        raise ProvisioningError(f"Project skeleton incomplete under {layout.root}")
    print_success(f"Project directory ready at {layout.root}")
