import unittest

import pytest

from fakes import FakeExecutor, fixed_clock

from invoice_deployer.config import ApplicationConfig
from invoice_deployer.errors import ConfigurationMissing, RemoteStageFailed
from invoice_deployer.orchestrator import ApplicationDeploy, needs_seed
from invoice_deployer.orchestrator.app_deploy import environment_overrides
from invoice_deployer.record import DeploymentParameters

APP_DIR = "/var/www/html"
ENV_EXAMPLE = "APP_ENV=local\nAPP_DEBUG=true\nDB_PASSWORD=\nAPP_KEY=\n"


@pytest.mark.parametrize(
    "listing, expected",
    [
        ("", True),
        ("\n", True),
        ("migrations", True),
        ("migrations\nusers", False),
        ("accounts\nclients\ninvoices\nmigrations\n", False),
    ],
)
def test_needs_seed(listing, expected):
    assert needs_seed(listing) is expected


class ApplicationDeployTests(unittest.TestCase):
    def setUp(self) -> None:
        self.executor = FakeExecutor()
        self.application = ApplicationConfig()
        self.params = DeploymentParameters(
            branch="v5-stable",
            db_password="db-secret",
            app_url="http://203.0.113.10",
        )

    def _stage(self, params=None) -> ApplicationDeploy:
        return ApplicationDeploy(
            self.executor,
            self.application,
            params or self.params,
            clock=fixed_clock,
        )

    def _no_checkout(self, *, non_empty: bool = False) -> None:
        self.executor.on(f"test -d {APP_DIR}/.git", exit_status=1)
        self.executor.on("ls -A", exit_status=0 if non_empty else 1)

    def _env_absent(self) -> None:
        self.executor.on(f"test -f {APP_DIR}/.env", exit_status=1, exact=True)
        self.executor.on(f"cat {APP_DIR}/.env", stdout=ENV_EXAMPLE)

    def test_existing_checkout_is_backed_up_once_and_updated(self) -> None:
        stage = self._stage()
        stage.run()

        archives = self.executor.ran("tar -czf")
        self.assertEqual(len(archives), 1)
        self.assertIn("invoiceninja-backup-20240305-143015.tar.gz", archives[0])
        self.assertEqual(len(stage.backups), 1)
        self.assertTrue(
            self.executor.ran(
                "git fetch origin && git checkout v5-stable && git pull origin v5-stable"
            )
        )
        self.assertEqual(self.executor.ran("git clone"), [])

    def test_second_run_adds_exactly_one_more_backup(self) -> None:
        self._stage().run()
        self._stage().run()
        self.assertEqual(len(self.executor.ran("tar -czf")), 2)

    def test_fresh_target_is_cloned(self) -> None:
        self._no_checkout()
        stage = self._stage()
        stage.run()

        self.assertEqual(self.executor.ran("tar -czf"), [])
        self.assertEqual(self.executor.ran("sudo mv"), [])
        clone = self.executor.ran("git clone")
        self.assertEqual(len(clone), 1)
        self.assertIn("--branch v5-stable", clone[0])
        self.assertIn("https://github.com/Intuitive-Solution/invoiceninja-backend /var/www/html", clone[0])

    def test_non_empty_target_is_relocated_before_clone(self) -> None:
        self._no_checkout(non_empty=True)
        stage = self._stage()
        stage.run()

        moves = self.executor.ran("sudo mv /var/www/html")
        self.assertEqual(len(moves), 1)
        self.assertIn("old-html-20240305-143015", moves[0])
        self.assertLess(
            self.executor.commands.index(moves[0]),
            self.executor.commands.index(self.executor.ran("git clone")[0]),
        )
        self.assertEqual(len(stage.backups), 1)

    def test_env_created_from_example_and_rewritten(self) -> None:
        self._env_absent()
        self._stage().run()

        self.assertTrue(self.executor.ran(f"cp {APP_DIR}/.env.example {APP_DIR}/.env"))
        env = self.executor.uploads[f"{APP_DIR}/.env"]
        self.assertIn("APP_ENV=production", env)
        self.assertIn("APP_DEBUG=false", env)
        self.assertIn("DB_PASSWORD=db-secret", env)
        self.assertIn("APP_URL=http://203.0.113.10", env)
        self.assertIn("QUEUE_CONNECTION=sync", env)
        self.assertTrue(self.executor.ran("php artisan key:generate --force"))

    def test_existing_env_is_not_recreated(self) -> None:
        self._stage().run()
        self.assertEqual(self.executor.ran("cp "), [])

    def test_missing_env_template_is_fatal(self) -> None:
        self._env_absent()
        self.executor.on(f"test -f {APP_DIR}/.env.example", exit_status=1, exact=True)

        with self.assertRaises(ConfigurationMissing) as ctx:
            self._stage().run()

        self.assertEqual(ctx.exception.stage, "ApplicationDeploy")
        self.assertEqual(self.executor.ran("composer install"), [])

    def test_supplied_app_key_is_injected(self) -> None:
        params = DeploymentParameters("master", "db-secret", app_key="base64:abc=")
        self._stage(params).run()

        self.assertIn("APP_KEY=base64:abc=", self.executor.uploads[f"{APP_DIR}/.env"])
        self.assertEqual(self.executor.ran("key:generate"), [])

    def test_seeds_fresh_database(self) -> None:
        self.executor.on("SHOW TABLES", stdout="migrations")
        stage = self._stage()
        stage.run()

        self.assertTrue(stage.seeded)
        self.assertTrue(self.executor.ran("php artisan db:seed --force"))
        table_query = self.executor.ran("SHOW TABLES")[0]
        self.assertIn("-N -B", table_query)
        self.assertIn("MYSQL_PWD=db-secret mysql -u invoiceninja -D invoiceninja", table_query)

    def test_skips_seeding_populated_database(self) -> None:
        self.executor.on("SHOW TABLES", stdout="accounts\nmigrations\nusers")
        stage = self._stage()
        stage.run()

        self.assertFalse(stage.seeded)
        self.assertEqual(self.executor.ran("db:seed"), [])

    def test_steps_run_in_order(self) -> None:
        self._stage().run()
        commands = self.executor.commands

        def first(fragment):
            return commands.index(self.executor.ran(fragment)[0])

        self.assertLess(first("composer install"), first("php artisan key:generate --force"))
        self.assertLess(first("composer install"), first("migrate --force"))
        self.assertLess(first("migrate --force"), first("SHOW TABLES"))
        self.assertLess(first("config:clear"), first("config:cache"))
        self.assertLess(first("config:cache"), first("systemctl restart php-fpm"))
        self.assertEqual(commands[-1], f"cd {APP_DIR} && php artisan --version")

    def test_fresh_clone_generates_key_after_composer(self) -> None:
        self._no_checkout()
        self._env_absent()
        self._stage().run()
        commands = self.executor.commands

        clone = commands.index(self.executor.ran("git clone")[0])
        composer = commands.index(self.executor.ran("composer install")[0])
        keygen = commands.index(self.executor.ran("key:generate")[0])
        self.assertLess(clone, composer)
        self.assertLess(composer, keygen)
        self.assertLess(keygen, commands.index(self.executor.ran("migrate --force")[0]))

    def test_failed_backup_is_a_warning(self) -> None:
        self.executor.on("tar -czf", exit_status=2, stderr="disk full")
        stage = self._stage()
        with self.assertLogs("invoice_deployer.orchestrator.app_deploy", level="WARNING"):
            stage.run()
        self.assertEqual(stage.backups, [])

    def test_failed_migration_is_fatal(self) -> None:
        self.executor.on("php artisan migrate --force", exit_status=1, stderr="SQLSTATE[HY000]")
        with self.assertRaises(RemoteStageFailed) as ctx:
            self._stage().run()
        self.assertEqual(ctx.exception.stage, "ApplicationDeploy")
        self.assertIn("SQLSTATE", str(ctx.exception))
        self.assertEqual(self.executor.ran("db:seed"), [])

    def test_environment_overrides_without_url(self) -> None:
        overrides = environment_overrides(
            self.application, DeploymentParameters("master", "pw")
        )
        self.assertNotIn("APP_URL", overrides)
        self.assertNotIn("APP_KEY", overrides)
        self.assertEqual(overrides["DB_DATABASE"], "invoiceninja")


if __name__ == "__main__":
    unittest.main()
