"""Let's Encrypt certificate issuance and HTTPS virtual host setup."""

from __future__ import annotations

import posixpath
import socket
from typing import Callable, List, Optional

import requests

from ..config import ApplicationConfig
from ..errors import ConfigurationMissing, RemoteStageFailed
from ..orchestrator import envfile
from ..orchestrator.bootstrap import NGINX_SITE_PATH
from ..orchestrator.remote import RemoteShell, quote
from ..ssh.executor import RemoteExecutor
from ..templating import NginxTLSSite, TemplateRenderer
from ..utils.logging import get_logger, log_header

logger = get_logger(__name__)

STAGE = "SSL"
RENEWAL_CRON = "0 12 * * * /usr/bin/certbot renew --quiet --nginx"
CRONTAB_STAGING = "/tmp/invoice-deployer-crontab"

Resolver = Callable[[str], str]
HttpGet = Callable[..., requests.Response]


def add_cron_entry(crontab: str, entry: str) -> Optional[str]:
    """Return `crontab` with `entry` appended, or None if it is already there."""
    lines = crontab.splitlines()
    if any(line.strip() == entry for line in lines):
        return None
    while lines and not lines[-1].strip():
        lines.pop()
    lines.append(entry)
    return "\n".join(lines) + "\n"


class SSLSetup:
    """Issues a certificate for a domain and switches Nginx to HTTPS."""

    def __init__(
        self,
        executor: RemoteExecutor,
        application: ApplicationConfig,
        *,
        server_ip: str,
        renderer: Optional[TemplateRenderer] = None,
        resolver: Resolver = socket.gethostbyname,
        http_get: Optional[HttpGet] = None,
    ) -> None:
        self.shell = RemoteShell(executor, STAGE)
        self.executor = executor
        self.application = application
        self.server_ip = server_ip
        self.renderer = renderer or TemplateRenderer()
        self._resolve = resolver
        self._http_get = http_get or requests.get
        self.warnings: List[str] = []

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def run(self, domain: str, email: str) -> List[str]:
        """Returns the non-fatal warnings raised along the way."""
        if not domain:
            raise ConfigurationMissing("Domain name is required", stage=STAGE)
        if not email:
            raise ConfigurationMissing("Email address is required", stage=STAGE)

        log_header(logger, f"SSL SETUP FOR {domain}")
        self.check_dns(domain)
        self.ensure_certbot()
        self.issue_certificate(domain, email)
        self.configure_nginx(domain)
        self.update_app_url(domain)
        self.schedule_renewal()
        self.probe_https(domain)

        logger.info("=== SSL SETUP SUMMARY ===")
        logger.info("Domain: %s", domain)
        logger.info("Certificate: /etc/letsencrypt/live/%s/fullchain.pem", domain)
        logger.info("Private Key: /etc/letsencrypt/live/%s/privkey.pem", domain)
        logger.info("Auto-renewal: Enabled (daily at 12:00)")
        logger.info("Application URL: https://%s", domain)
        return list(self.warnings)

    def check_dns(self, domain: str) -> None:
        logger.info("Checking domain resolution...")
        try:
            resolved = self._resolve(domain)
        except OSError as exc:
            self._warn(f"Domain {domain} could not be resolved: {exc}")
            return
        if resolved != self.server_ip:
            self._warn(
                f"Domain {domain} resolves to {resolved} but server IP is {self.server_ip}; "
                "certificate generation may fail"
            )

    def ensure_certbot(self) -> None:
        if self.shell.succeeds("command -v certbot"):
            return
        self.shell.run(
            "sudo dnf install -y certbot python3-certbot-nginx", "Installing certbot"
        )

    def issue_certificate(self, domain: str, email: str) -> None:
        """Standalone challenge; nginx is started again whatever certbot returns."""
        self.shell.run("sudo systemctl stop nginx", "Stopping nginx temporarily")
        try:
            result = self.shell.run(
                "sudo certbot certonly --standalone --non-interactive --agree-tos"
                f" --email {quote(email)} -d {quote(domain)}",
                "Generating SSL certificate",
                check=False,
            )
        finally:
            self.shell.run("sudo systemctl start nginx", "Starting nginx")
        if not result.ok:
            raise RemoteStageFailed(
                result.command,
                result.exit_status,
                result.stderr,
                description="Generating SSL certificate",
                stage=STAGE,
            )

    def configure_nginx(self, domain: str) -> None:
        site = NginxTLSSite(
            domain=domain,
            app_dir=self.application.app_dir,
            php_fpm_socket=self.application.php_fpm_socket,
        )
        self.shell.install_file(
            self.renderer.render("nginx-tls-site.conf.j2", site),
            NGINX_SITE_PATH,
            description="Updating nginx configuration for SSL",
        )
        self.shell.run("sudo nginx -t", "Testing nginx configuration")
        self.shell.run("sudo systemctl reload nginx", "Reloading nginx")

    def update_app_url(self, domain: str) -> None:
        env_path = posixpath.join(self.application.app_dir, ".env")
        if not self.shell.succeeds(f"test -f {quote(env_path)}"):
            self._warn(f"{env_path} not found; APP_URL not updated")
            return
        current = self.shell.output(f"cat {quote(env_path)}")
        self.executor.upload_text(
            envfile.rewrite(current, {"APP_URL": f"https://{domain}"}), env_path
        )
        app_dir = quote(self.application.app_dir)
        self.shell.run(
            f"cd {app_dir} && php artisan config:clear && php artisan config:cache",
            "Updating application URL",
        )

    def schedule_renewal(self) -> None:
        logger.info("Setting up SSL certificate auto-renewal...")
        # `crontab -l` exits non-zero when no crontab exists yet
        current = self.shell.run("sudo crontab -l", check=False)
        updated = add_cron_entry(current.stdout if current.ok else "", RENEWAL_CRON)
        if updated is None:
            logger.info("Renewal entry already present")
            return
        self.executor.upload_text(updated, CRONTAB_STAGING)
        self.shell.run(
            f"sudo crontab {CRONTAB_STAGING} && rm -f {CRONTAB_STAGING}"
        )

    def probe_https(self, domain: str) -> None:
        url = f"https://{domain}"
        logger.info("Testing SSL certificate...")
        try:
            response = self._http_get(url, timeout=self.application.http_timeout)
        except requests.RequestException as exc:
            self._warn(f"SSL certificate test failed: {exc}")
            return
        if response.status_code != 200:
            self._warn(f"SSL certificate test failed: {url} returned HTTP {response.status_code}")
            return
        logger.info("✓ SSL certificate is working correctly")
