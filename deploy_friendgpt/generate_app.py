import os
import shutil
import textwrap
from pathlib import Path

from dotenv import dotenv_values

import friendgpt_app

from .console import print_build, print_success
from .errors import ProvisioningError
from .provision import chown_recursive, run_command

APP_SOURCE_DIR = Path(friendgpt_app.__file__).resolve().parent

# Copied verbatim into the project directory, relative to APP_SOURCE_DIR
APP_FILES = [
    "app.py",
    "templates/index.html",
    "templates/login.html",
    "static/style.css",
    "static/script.js",
]

ENV_KEYS = ["OPENAI_API_KEY", "BOT_PASSWORD", "SYSTEM_PROMPT", "FLASK_SECRET_KEY"]
# Loaded back byte for byte; only SYSTEM_PROMPT has its escapes decoded
VERBATIM_KEYS = ["OPENAI_API_KEY", "BOT_PASSWORD", "FLASK_SECRET_KEY"]


def generate_requirements():
    return textwrap.dedent("""\
        flask
        gunicorn
        openai>=1.0.0
        python-dotenv
    """)


def _quote_env_value(value, verbatim=True):
    value = str(value)
    if verbatim:
        value = value.replace("\\", "\\\\")
    # Unescaped backslashes in the system prompt let a typed "\n" load as a line break
    return '"' + value.replace('"', '\\"') + '"'


def _env_values(config):
    return {
        "OPENAI_API_KEY": config.openai_api_key,
        "BOT_PASSWORD": config.bot_password,
        "SYSTEM_PROMPT": config.system_prompt,
        "FLASK_SECRET_KEY": config.flask_secret_key,
    }


def generate_env(config):
    values = _env_values(config)
    return "".join(
        f"{key}={_quote_env_value(values[key], verbatim=key in VERBATIM_KEYS)}\n"
        for key in ENV_KEYS
    )


def write_env_file(layout, config):
    """Truncate and rewrite the secrets file with owner-only permissions.

    The file is read back the way the app reads it: every key must parse and
    the verbatim ones must come back unchanged.
    """
    path = layout.env_file
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(generate_env(config))
    # os.open only applies the mode when the file is new
    os.chmod(path, 0o600)

    loaded = dotenv_values(path, interpolate=False)
    expected = _env_values(config)
    garbled = [key for key in ENV_KEYS
               if key not in loaded or (key in VERBATIM_KEYS and loaded[key] != expected[key])]
    if garbled:
        raise ProvisioningError(f"{path} does not read back cleanly: {', '.join(garbled)}")

    run_command(["chown", f"{config.app_user}:{config.app_user}", str(path)])
    return path


def copy_app_files(layout):
    written = []
    for relative in APP_FILES:
        source = APP_SOURCE_DIR / relative
        target = layout.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        written.append(target)
    return written


def write_application(layout, config):
    print_build(f"Writing application files to {layout.root}")

    layout.requirements.write_text(generate_requirements())
    write_env_file(layout, config)
    written = [layout.requirements, layout.env_file] + copy_app_files(layout)
    chown_recursive(layout.root, config.app_user)

    missing = [str(p) for p in written if not p.is_file()]
    if missing:
        raise ProvisioningError(f"Application files missing: {', '.join(missing)}")
    print_success("Application files written")
    return written
