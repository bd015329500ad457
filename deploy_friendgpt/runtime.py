import shutil

from .console import print_build, print_success
from .errors import ProvisioningError
from .provision import run_command


def python_binary():
    path = shutil.which("python3")
    if not path:
        raise ProvisioningError("python3 not found on PATH")
    return path


def build_runtime(layout, user, python_bin=None):
    """Create the project's venv and install requirements.txt, both as the app user."""
    python_bin = python_bin or python_binary()
    print_build(f"Creating virtualenv in {layout.venv_dir}")

    run_command(
        ["sudo", "-u", user, python_bin, "-m", "venv", str(layout.venv_dir)],
        cwd=str(layout.root)
    )
    run_command(
        ["sudo", "-u", user, str(layout.venv_bin / "pip"), "install", "-q",
         "-r", str(layout.requirements)],
        cwd=str(layout.root)
    )

    if not layout.gunicorn.exists():
        raise ProvisioningError(f"gunicorn missing from {layout.venv_bin} after pip install")
    print_success("Python dependencies installed")
