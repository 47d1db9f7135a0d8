import pytest
from jinja2 import UndefinedError

from invoice_deployer.templating import (
    BackupManifest,
    LogrotateRule,
    MonitorHelper,
    NginxSite,
    PhpFpmPool,
    TemplateRenderer,
)


@pytest.fixture(scope="module")
def renderer():
    return TemplateRenderer()


def test_nginx_site_points_at_public_dir(renderer):
    text = renderer.render(
        "nginx-site.conf.j2",
        NginxSite(app_dir="/srv/app", php_fpm_socket="/run/php-fpm/www.sock"),
    )
    assert "root /srv/app/public;" in text
    assert "fastcgi_pass unix:/run/php-fpm/www.sock;" in text
    assert "server_name _;" in text
    assert "try_files $uri $uri/ /index.php?$query_string;" in text


def test_missing_variable_fails_at_render_time(renderer):
    with pytest.raises(UndefinedError):
        renderer.render("nginx-site.conf.j2", app_dir="/srv/app")


def test_extra_values_override_context(renderer):
    text = renderer.render(
        "nginx-site.conf.j2",
        NginxSite(app_dir="/srv/app", php_fpm_socket="/run/php.sock"),
        server_name="billing.example.com",
    )
    assert "server_name billing.example.com;" in text


def test_php_fpm_pool_runs_as_login_user(renderer):
    text = renderer.render(
        "php-fpm-pool.conf.j2",
        PhpFpmPool(user="ec2-user", group="ec2-user", listen_socket="/run/php-fpm/www.sock"),
    )
    assert "user = ec2-user" in text
    assert "listen = /run/php-fpm/www.sock" in text


def test_static_configs_render(renderer):
    assert "upload_max_filesize = 100M" in renderer.render("php-overrides.ini.j2")
    assert "innodb_buffer_pool_size" in renderer.render("mariadb-tuning.cnf.j2")


def test_logrotate_rule(renderer):
    text = renderer.render("logrotate.j2", LogrotateRule(app_dir="/var/www/html", user="ec2-user"))
    assert text.startswith("/var/www/html/storage/logs/*.log {")
    assert "create 644 ec2-user ec2-user" in text


def test_monitor_helper_reads_password_from_env_file(renderer):
    text = renderer.render(
        "monitor-helper.sh.j2",
        MonitorHelper(app_dir="/var/www/html", db_name="invoiceninja", db_user="invoiceninja"),
    )
    assert text.startswith("#!/bin/bash")
    assert 'MYSQL_PWD="$DB_PASSWORD" mysql -u invoiceninja' in text


def test_backup_manifest(renderer):
    text = renderer.render(
        "backup-manifest.txt.j2",
        BackupManifest(
            generated="2024-03-05 14:30:15",
            hostname="ip-10-0-1-5",
            server_ip="203.0.113.10",
            database_backup="db.sql.gz",
            application_backup="app.tar.gz",
            configuration_backup="config.tar.gz",
            database_size="1M",
            application_size="50M",
            configuration_size="4K",
            total_size="51M",
        ),
    )
    assert text.splitlines()[0] == "Invoice Ninja Backup Manifest"
    assert "Total Backup Size: 51M" in text
