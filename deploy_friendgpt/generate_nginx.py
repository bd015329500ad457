import os
import textwrap
from pathlib import Path

import dns.resolver
import dns.exception

from .console import print_build, print_info, print_success, print_warn
from .errors import ProvisioningError
from .provision import run_command

NGINX_SITES_AVAILABLE = Path("/etc/nginx/sites-available")
NGINX_SITES_ENABLED = Path("/etc/nginx/sites-enabled")
PUBLIC_NAMESERVERS = ['8.8.8.8', '8.8.4.4']  # Google DNS


def generate_nginx(config):
    """Return the nginx server block forwarding the public domain to gunicorn."""

    # ========== TOKEN DEFINITIONS ==========
    tokens = {
        "__DOMAIN__": config.domain,
        "__PORT__": str(config.port),
    }

    # ========== BASE TEMPLATE ==========
    site_template = textwrap.dedent("""\
        server {
            listen 80;
            server_name __DOMAIN__;

            location / {
                proxy_pass         http://127.0.0.1:__PORT__;
                proxy_set_header   Host $host;
                proxy_set_header   X-Real-IP $remote_addr;
                proxy_set_header   X-Forwarded-For $proxy_add_x_forwarded_for;
                proxy_set_header   X-Forwarded-Proto $scheme;
            }
        }
    """)

    # ========== TOKEN REPLACEMENT ==========
    final_site = site_template
    for token, value in tokens.items():
        final_site = final_site.replace(token, value)
    return final_site


def register_site(config, sites_available=NGINX_SITES_AVAILABLE, sites_enabled=NGINX_SITES_ENABLED):
    """Write and enable the vhost, validate nginx config and reload nginx."""
    site_path = Path(sites_available) / config.instance
    link_path = Path(sites_enabled) / config.instance
    print_build(f"Writing nginx site {site_path}")
    site_path.write_text(generate_nginx(config))

    if link_path.is_symlink() or link_path.exists():
        link_path.unlink()
    os.symlink(site_path, link_path)

    run_command(["nginx", "-t"])
    run_command(["systemctl", "reload", "nginx"])

    if not link_path.is_symlink():
        raise ProvisioningError(f"nginx site {config.instance} is not enabled")
    print_success(f"nginx forwarding {config.domain} -> 127.0.0.1:{config.port}")
    return site_path


def resolve_domain(domain, nameservers=PUBLIC_NAMESERVERS):
    """A records for the domain as seen by public resolvers; empty when it does not resolve."""
    resolver = dns.resolver.Resolver()
    resolver.nameservers = nameservers
    try:
        answers = resolver.resolve(domain, 'A')
    except dns.exception.DNSException as e:
        print_warn(f"Could not resolve A records for '{domain}': {e}")
        return []
    return sorted(rdata.address for rdata in answers)


def check_domain_resolution(domain):
    print_info(f"🔍 Checking public DNS for '{domain}'...")
    addresses = resolve_domain(domain)
    if addresses:
        print_info(f"🌐 '{domain}' resolves to: {', '.join(addresses)}")
        return True
    print_warn(
        f"'{domain}' has no public A record yet. Let's Encrypt validation will fail "
        "until the domain points at this server."
    )
    return False


def issue_certificate(config):
    print_build(f"Requesting Let's Encrypt certificate for {config.domain}")
    run_command([
        "certbot", "--nginx",
        "-d", config.domain,
        "-m", config.cert_email,
        "--agree-tos",
        "--redirect",
        "--non-interactive",
    ])
    print_success(f"HTTPS enabled for {config.domain}")
