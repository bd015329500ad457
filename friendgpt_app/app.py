import os
import secrets
from flask import Flask, render_template, request, jsonify, session, redirect, url_for
from dotenv import load_dotenv
from openai import OpenAI

MODEL = "gpt-4o-mini"
TEMPERATURE = 0.85
MAX_TOKENS = 512
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
DEFAULT_BOT_NAME = "FriendGPT"
DEFAULT_UPSTREAM_TIMEOUT = 60.0


def _env_flag(value):
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


class ChatConfig:
    """Settings loaded once at startup and handed to every route."""

    def __init__(self, api_key, password, system_prompt=DEFAULT_SYSTEM_PROMPT,
                 secret_key=None, bot_name=DEFAULT_BOT_NAME,
                 require_auth_on_api=False, upstream_timeout=DEFAULT_UPSTREAM_TIMEOUT):
        self.api_key = api_key
        self.password = password
        self.system_prompt = system_prompt
        self.secret_key = secret_key or secrets.token_hex(16)
        self.bot_name = bot_name
        self.require_auth_on_api = require_auth_on_api
        self.upstream_timeout = upstream_timeout

    @classmethod
    def from_env(cls, env_file=None):
        # Values already in the process environment (systemd Environment=) win over .env
        load_dotenv(env_file, interpolate=False)
        timeout = os.getenv("OPENAI_TIMEOUT")
        return cls(
            api_key=os.getenv("OPENAI_API_KEY"),
            password=os.getenv("BOT_PASSWORD"),
            system_prompt=os.getenv("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            secret_key=os.getenv("FLASK_SECRET_KEY"),
            bot_name=os.getenv("BOT_NAME", DEFAULT_BOT_NAME),
            require_auth_on_api=_env_flag(os.getenv("REQUIRE_AUTH_ON_API")),
            upstream_timeout=float(timeout) if timeout else DEFAULT_UPSTREAM_TIMEOUT,
        )


class SessionGate:
    """Tracks the per-visitor auth state inside Flask's signed session cookie."""

    KEY = "authed"

    def is_authenticated(self):
        return session.get(self.KEY) is True

    def authenticate(self):
        session[self.KEY] = True


def create_app(config=None, client=None):
    config = config or ChatConfig.from_env()
    if client is None:
        client = OpenAI(api_key=config.api_key, timeout=config.upstream_timeout, max_retries=0)

    app = Flask(__name__)
    app.secret_key = config.secret_key
    gate = SessionGate()

    @app.route("/")
    def index():
        if not gate.is_authenticated():
            return redirect(url_for("login"))
        return render_template("index.html", bot_name=config.bot_name)

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if request.method == "POST":
            submitted = request.form.get("password")
            if config.password and submitted == config.password:
                gate.authenticate()
                return redirect(url_for("index"))
            return "Wrong password", 403
        return render_template("login.html", bot_name=config.bot_name)

    @app.route("/api/chat", methods=["POST"])
    def chat():
        if config.require_auth_on_api and not gate.is_authenticated():
            return jsonify({"error": "Unauthorized"}), 401

        payload = request.get_json(silent=True) or {}
        message = payload.get("message") if isinstance(payload, dict) else None
        q = message.strip() if isinstance(message, str) else ""
        if not q:
            return jsonify({"error": "Empty message"}), 400

        try:
            resp = client.chat.completions.create(
                model=MODEL,
                messages=[
                    {"role": "system", "content": config.system_prompt},
                    {"role": "user", "content": q}
                ],
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS
            )
        except Exception:
            app.logger.exception("Upstream chat completion failed")
            raise
        reply = resp.choices[0].message.content or ""
        return jsonify({"reply": reply.strip()})

    return app
