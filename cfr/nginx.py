from __future__ import annotations

import logging
from dataclasses import dataclass

from . import shell
from .settings import settings


logger = logging.getLogger(__name__)


class NginxError(Exception):
    pass


@dataclass(frozen=True)
class BindingConfiguration:
    default_domain: str = ""
    ssl_certificate: str = ""
    ssl_private_key: str = ""
    label_prefix: str = settings.label_prefix


HTTP_TEMPLATE = """server {{
    listen {listen};
    {ssl}
    server_name {domain};
    location / {{
        proxy_pass {protocol}://{ip}:{port};

        # WebSocket support
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection $http_connection;
    }}
}}
"""

TCP_TEMPLATE = """server {{
    listen {listen};
    {ssl}
    proxy_pass {ip}:{port};
}}
"""

UDP_TEMPLATE = """server {{
    listen {listen} udp;
    proxy_pass {ip}:{port};
}}
"""

SSL_TEMPLATE = """ssl_certificate {cert};
ssl_certificate_key {key};
ssl_protocols TLSv1.3;
ssl_ciphers     HIGH:!aNULL:!MD5;"""


def ssl_block(config: BindingConfiguration) -> str:
    return SSL_TEMPLATE.format(cert=config.ssl_certificate, key=config.ssl_private_key)


def http_server(
    listen: str,
    use_ssl: bool,
    domain: str,
    protocol: str,
    ip: str,
    port: int,
    config: BindingConfiguration,
) -> str:
    return HTTP_TEMPLATE.format(
        listen=f"{listen} ssl" if use_ssl else listen,
        ssl=ssl_block(config) if use_ssl else "",
        domain=domain,
        protocol=protocol,
        ip=ip,
        port=int(port),
    )


def tcp_server(listen: str, use_ssl: bool, ip: str, port: int, config: BindingConfiguration) -> str:
    return TCP_TEMPLATE.format(
        listen=listen,
        ssl=ssl_block(config) if use_ssl else "",
        ip=ip,
        port=int(port),
    )


def udp_server(listen: str, ip: str, port: int) -> str:
    return UDP_TEMPLATE.format(listen=listen, ip=ip, port=int(port))


def validate_nginx(executable: str) -> bool:
    """Run `<executable> -t` against the config on disk."""
    try:
        proc = shell.run([executable, "-t"])
    except OSError as e:
        logger.error("Could not run nginx validation: %s", e)
        return False
    if proc.returncode != 0:
        logger.error("nginx rejected the generated config (exit %s): %s", proc.returncode, shell.one_line(proc.stdout or ""))
        return False
    return True


def reload_nginx(service: str = "nginx") -> None:
    """Restart the nginx service. Call validate_nginx first."""
    try:
        proc = shell.run([settings.service_bin, service, "restart"])
    except OSError as e:
        raise NginxError(f"could not run {settings.service_bin}: {e}") from e
    if proc.returncode != 0:
        raise NginxError(f"{service} restart failed (exit {proc.returncode}): {shell.one_line(proc.stdout or '')}")
