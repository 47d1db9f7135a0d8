"""Host Bootstrap stage: packages, services, database and helper scripts."""

from __future__ import annotations

from typing import Optional

from ..config import ApplicationConfig
from ..record import DeploymentParameters
from ..ssh.executor import RemoteExecutor
from ..templating import (
    LogrotateRule,
    MonitorHelper,
    NginxSite,
    PhpFpmPool,
    RedeployHelper,
    TemplateRenderer,
)
from ..utils.logging import get_logger
from .models import Stage
from .remote import RemoteShell, mysql_command, quote, sql_literal

logger = get_logger(__name__)

BASE_PACKAGES = ("wget", "curl", "git", "unzip", "vim", "nano", "htop")
PHP_PACKAGES = (
    "php", "php-cli", "php-fpm", "php-mysqlnd", "php-xml", "php-gd",
    "php-mbstring", "php-curl", "php-zip", "php-intl", "php-bcmath",
    "php-opcache", "php-json", "php-dom", "php-fileinfo", "php-openssl",
    "php-pdo", "php-ctype",
)
DATABASE_PACKAGES = ("mariadb105-server", "mariadb105")
SERVICES = ("nginx", "mariadb", "php-fpm")

NGINX_SITE_PATH = "/etc/nginx/conf.d/invoiceninja.conf"
PHP_INI_PATH = "/etc/php.d/99-invoiceninja.ini"
PHP_FPM_POOL_PATH = "/etc/php-fpm.d/www.conf"
MARIADB_TUNING_PATH = "/etc/my.cnf.d/invoiceninja.cnf"
LOGROTATE_PATH = "/etc/logrotate.d/invoiceninja"
REDEPLOY_HELPER_PATH = "/usr/local/bin/deploy-invoiceninja.sh"
MONITOR_HELPER_PATH = "/usr/local/bin/monitor-invoiceninja.sh"


def database_statements(db_name: str, db_user: str, db_password: str) -> list[str]:
    """SQL that creates the app database and user; safe to run repeatedly."""
    user = f"{sql_literal(db_user)}@'localhost'"
    return [
        f"CREATE DATABASE IF NOT EXISTS `{db_name}` "
        "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;",
        f"CREATE USER IF NOT EXISTS {user} IDENTIFIED BY {sql_literal(db_password)};",
        f"GRANT ALL PRIVILEGES ON `{db_name}`.* TO {user};",
        "FLUSH PRIVILEGES;",
    ]


class HostBootstrap:
    """Turns a bare Amazon Linux host into an Nginx/PHP-FPM/MariaDB server."""

    def __init__(
        self,
        executor: RemoteExecutor,
        application: ApplicationConfig,
        parameters: DeploymentParameters,
        *,
        login_user: str = "ec2-user",
        renderer: Optional[TemplateRenderer] = None,
    ) -> None:
        self.shell = RemoteShell(executor, Stage.HOST_BOOTSTRAP.value)
        self.application = application
        self.parameters = parameters
        self.login_user = login_user
        self.renderer = renderer or TemplateRenderer()

    def run(self) -> None:
        self.install_packages()
        self.configure_php()
        self.start_services()
        self.install_composer()
        self.secure_database()
        self.create_database()
        self.configure_nginx()
        self.prepare_app_directory()
        self.configure_firewall()
        self.write_system_configs()
        self.restart_services()
        self.install_helpers()
        logger.info("✓ Server setup completed")

    def install_packages(self) -> None:
        self.shell.run("sudo dnf update -y", "Updating system packages")
        self.shell.run(
            "sudo dnf install -y --allowerasing " + " ".join(BASE_PACKAGES),
            "Installing basic tools",
        )
        self.shell.run(
            "sudo dnf install -y " + " ".join(PHP_PACKAGES),
            "Installing PHP and extensions",
        )
        self.shell.run("sudo dnf install -y nginx", "Installing Nginx")
        self.shell.run(
            "sudo dnf install -y " + " ".join(DATABASE_PACKAGES),
            "Installing MariaDB",
        )
        self.shell.run("sudo dnf install -y nodejs npm", "Installing Node.js and npm")
        self.shell.run(
            "sudo dnf install -y certbot python3-certbot-nginx",
            "Installing SSL certificate tools",
        )

    def configure_php(self) -> None:
        self.shell.install_file(
            self.renderer.render("php-overrides.ini.j2"),
            PHP_INI_PATH,
            description="Configuring PHP",
        )
        pool = PhpFpmPool(
            user=self.login_user,
            group=self.login_user,
            listen_socket=self.application.php_fpm_socket,
        )
        self.shell.install_file(
            self.renderer.render("php-fpm-pool.conf.j2", pool),
            PHP_FPM_POOL_PATH,
            description="Configuring PHP-FPM",
        )

    def start_services(self) -> None:
        logger.info("Starting and enabling services...")
        for service in SERVICES:
            self.shell.run(f"sudo systemctl enable --now {service}")

    def install_composer(self) -> None:
        self.shell.run(
            "cd /tmp && curl -sS https://getcomposer.org/installer | php"
            " && sudo mv composer.phar /usr/local/bin/composer"
            " && sudo chmod +x /usr/local/bin/composer",
            "Installing Composer",
        )

    def secure_database(self) -> None:
        """Best effort: every step may already have been applied on a re-run."""
        logger.info("Securing MariaDB installation...")
        password = self.parameters.db_password
        self.shell.run("sudo mysqladmin --wait=30 ping", check=False)
        self.shell.run(
            f"sudo mysqladmin -u root password {quote(password)}", check=False
        )
        for sql in (
            "DELETE FROM mysql.user WHERE User='';",
            "DELETE FROM mysql.user WHERE User='root' "
            "AND Host NOT IN ('localhost', '127.0.0.1', '::1');",
            "DROP DATABASE IF EXISTS test;",
            "DELETE FROM mysql.db WHERE Db='test' OR Db='test\\_%';",
            "FLUSH PRIVILEGES;",
        ):
            self.shell.run(mysql_command("root", password, sql, sudo=True), check=False)

    def create_database(self) -> None:
        logger.info("Creating application database and user...")
        for sql in database_statements(
            self.application.db_name,
            self.application.db_user,
            self.parameters.db_password,
        ):
            self.shell.run(mysql_command("root", self.parameters.db_password, sql, sudo=True))

    def configure_nginx(self) -> None:
        site = NginxSite(
            app_dir=self.application.app_dir,
            php_fpm_socket=self.application.php_fpm_socket,
        )
        self.shell.install_file(
            self.renderer.render("nginx-site.conf.j2", site),
            NGINX_SITE_PATH,
            description="Configuring Nginx",
        )
        self.shell.run("sudo rm -f /etc/nginx/conf.d/default.conf")

    def prepare_app_directory(self) -> None:
        app_dir = quote(self.application.app_dir)
        owner = f"{self.login_user}:{self.login_user}"
        self.shell.run(
            f"sudo mkdir -p {app_dir} && sudo chown -R {owner} {app_dir}"
            f" && sudo chmod -R 755 {app_dir}",
            "Creating application directory",
        )

    def configure_firewall(self) -> None:
        if not self.shell.succeeds("systemctl is-active --quiet firewalld"):
            return
        self.shell.run(
            "sudo firewall-cmd --permanent --add-service=http"
            " && sudo firewall-cmd --permanent --add-service=https"
            " && sudo firewall-cmd --reload",
            "Configuring firewall",
        )

    def write_system_configs(self) -> None:
        self.shell.install_file(
            self.renderer.render(
                "logrotate.j2",
                LogrotateRule(app_dir=self.application.app_dir, user=self.login_user),
            ),
            LOGROTATE_PATH,
            description="Configuring log rotation",
        )
        self.shell.run("sudo mkdir -p /etc/my.cnf.d")
        self.shell.install_file(
            self.renderer.render("mariadb-tuning.cnf.j2"),
            MARIADB_TUNING_PATH,
            description="Configuring MariaDB for better performance",
        )

    def restart_services(self) -> None:
        logger.info("Restarting services...")
        for service in SERVICES:
            self.shell.run(f"sudo systemctl restart {service}")

    def install_helpers(self) -> None:
        redeploy = RedeployHelper(
            repo_url=self.application.repo_url,
            app_dir=self.application.app_dir,
            backup_dir=self.application.backup_dir,
            user=self.login_user,
            default_branch=self.parameters.branch,
        )
        self.shell.install_file(
            self.renderer.render("redeploy-helper.sh.j2", redeploy),
            REDEPLOY_HELPER_PATH,
            mode="755",
            description="Installing redeploy helper",
        )
        monitor = MonitorHelper(
            app_dir=self.application.app_dir,
            db_name=self.application.db_name,
            db_user=self.application.db_user,
        )
        self.shell.install_file(
            self.renderer.render("monitor-helper.sh.j2", monitor),
            MONITOR_HELPER_PATH,
            mode="755",
            description="Installing status helper",
        )
