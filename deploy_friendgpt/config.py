import re
import errno
import socket
import random
import getpass
import secrets

from .console import print_info, print_warn
from .errors import ConfigError

PORT_RANGE = (5000, 5999)
MAX_PORT_ATTEMPTS = 200

INSTANCE_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
USER_RE = re.compile(r"^[a-z][-a-z0-9_]*$")
DOMAIN_RE = re.compile(r"^[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class DeploymentConfig:
    """Everything the operator supplied for one bot instance."""

    REQUIRED = ("instance", "domain", "app_user", "openai_api_key",
                "bot_password", "system_prompt", "flask_secret_key")
    SECRETS = ("openai_api_key", "bot_password", "system_prompt", "flask_secret_key")

    def __init__(self, instance, domain, app_user, openai_api_key, bot_password,
                 system_prompt, flask_secret_key, port, want_tls=True,
                 cert_email="", require_auth_on_api=False):
        self.instance = instance
        self.domain = domain
        self.app_user = app_user
        self.openai_api_key = openai_api_key
        self.bot_password = bot_password
        self.system_prompt = system_prompt
        self.flask_secret_key = flask_secret_key
        self.port = port
        self.want_tls = want_tls
        self.cert_email = cert_email
        self.require_auth_on_api = require_auth_on_api

    @property
    def url(self):
        scheme = "https" if self.want_tls else "http"
        return f"{scheme}://{self.domain}"

    def validate(self):
        missing = [name for name in self.REQUIRED if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Missing required values: {', '.join(missing)}")
        # A trailing backslash would escape the closing quote in .env
        trailing = [name for name in self.SECRETS if str(getattr(self, name)).endswith("\\")]
        if trailing:
            raise ConfigError(f"Values must not end with a backslash: {', '.join(trailing)}")
        if not INSTANCE_RE.match(self.instance):
            raise ConfigError(f"Invalid instance name: {self.instance} "
                              "(use lowercase letters, digits, '-' or '_')")
        if not USER_RE.match(self.app_user):
            raise ConfigError(f"Invalid Linux user name: {self.app_user}")
        if not DOMAIN_RE.match(self.domain):
            raise ConfigError(f"Invalid domain format: {self.domain}")
        if not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            raise ConfigError(f"Invalid port number: {self.port} (must be 1-65535)")
        if self.want_tls and not self.cert_email:
            raise ConfigError("An email address is required for TLS certificates")
        return self


def generate_secret_key():
    return secrets.token_hex(16)


def _bind_fails(family, address, port):
    try:
        sock = socket.socket(family, socket.SOCK_STREAM)
    except OSError:
        # Address family not available on this host
        return False
    with sock:
        if family == socket.AF_INET6:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
        try:
            sock.bind((address, port))
        except OSError as e:
            return e.errno == errno.EADDRINUSE
    return False


def is_port_listening(port):
    """True if something already holds the port on the IPv4 or IPv6 wildcard address."""
    if _bind_fails(socket.AF_INET, "0.0.0.0", port):
        return True
    return socket.has_ipv6 and _bind_fails(socket.AF_INET6, "::", port)


def pick_free_port(low=PORT_RANGE[0], high=PORT_RANGE[1],
                   max_attempts=MAX_PORT_ATTEMPTS, is_listening=is_port_listening):
    for _ in range(max_attempts):
        candidate = random.randint(low, high)
        if not is_listening(candidate):
            return candidate
    raise ConfigError(f"No free port found in {low}-{high} after {max_attempts} attempts")


def _yes(answer, default=True):
    answer = (answer or "").strip().lower()
    if not answer:
        return default
    return answer != "n" if default else answer == "y"


def collect_config(input_fn=input, secret_fn=getpass.getpass, port_picker=pick_free_port):
    """Interactively gather a DeploymentConfig.

    The API key and the gate password are read without echo. A blank secret
    key is replaced by a generated one; port auto-assignment is the default.
    """
    instance = input_fn("➡  Bot instance name (e.g. eligpt): ").strip()
    domain = input_fn("➡  Domain for this bot (e.g. eli.example.com): ").strip()
    app_user = input_fn("➡  Linux user to run the service (create if new): ").strip()
    openai_api_key = secret_fn("➡  OpenAI API key: ").strip()
    bot_password = secret_fn("➡  Password visitors must enter: ")
    system_prompt = input_fn("➡  Paste your SYSTEM PROMPT (single line; use \\n for breaks): ")

    flask_secret_key = input_fn("➡  Flask Secret Key (leave empty to generate): ").strip()
    if not flask_secret_key:
        flask_secret_key = generate_secret_key()
        print_info("No key provided, generated one automatically.")

    if _yes(input_fn("➡  Auto-assign HTTP port? [Y/n]: ")):
        port = port_picker()
        print_info(f"Selected free port {port}")
    else:
        raw_port = input_fn("➡  Port for Gunicorn (e.g. 5050): ").strip()
        try:
            port = int(raw_port)
        except ValueError:
            raise ConfigError(f"Invalid port number: {raw_port}")

    want_tls = _yes(input_fn("➡  Issue HTTPS cert with Let's Encrypt now? [Y/n]: "))
    cert_email = ""
    if want_tls:
        cert_email = input_fn("➡  Email for TLS notices: ").strip()

    require_auth_on_api = _yes(input_fn("➡  Require login for /api/chat too? [y/N]: "), default=False)
    if not require_auth_on_api:
        print_warn("/api/chat will accept requests without a logged-in session")

    return DeploymentConfig(
        instance=instance,
        domain=domain,
        app_user=app_user,
        openai_api_key=openai_api_key,
        bot_password=bot_password,
        system_prompt=system_prompt,
        flask_secret_key=flask_secret_key,
        port=port,
        want_tls=want_tls,
        cert_email=cert_email,
        require_auth_on_api=require_auth_on_api,
    )
