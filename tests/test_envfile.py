from invoice_deployer.orchestrator import envfile

EXAMPLE = """APP_NAME="Invoice Ninja"
APP_ENV=local
APP_DEBUG=true
# database
DB_HOST=localhost
DB_PASSWORD=
"""


class TestRewrite:
    def test_replaces_recognized_keys_and_keeps_others(self):
        result = envfile.rewrite(EXAMPLE, {"APP_ENV": "production", "DB_HOST": "127.0.0.1"})

        lines = result.splitlines()
        assert 'APP_NAME="Invoice Ninja"' in lines
        assert "APP_ENV=production" in lines
        assert "DB_HOST=127.0.0.1" in lines
        assert "# database" in lines
        assert "APP_DEBUG=true" in lines

    def test_appends_missing_keys(self):
        result = envfile.rewrite(EXAMPLE, {"QUEUE_CONNECTION": "sync"})

        assert result.endswith("\nQUEUE_CONNECTION=sync\n")
        assert result.count("QUEUE_CONNECTION") == 1

    def test_replaces_every_occurrence(self):
        result = envfile.rewrite("APP_URL=a\nAPP_URL=b\n", {"APP_URL": "https://billing.example.com"})
        assert result == "APP_URL=https://billing.example.com\nAPP_URL=https://billing.example.com\n"

    def test_quotes_unsafe_values(self):
        result = envfile.rewrite("", {"DB_PASSWORD": "p@ss word$1"})
        assert "DB_PASSWORD='p@ss word$1'" in result
        assert envfile.read_value(result, "DB_PASSWORD") == "p@ss word$1"

    def test_double_quotes_values_with_single_quotes(self):
        assert envfile.format_value("it's") == '"it\'s"'

    def test_idempotent(self):
        overrides = {"APP_ENV": "production", "CACHE_DRIVER": "file"}
        once = envfile.rewrite(EXAMPLE, overrides)
        assert envfile.rewrite(once, overrides) == once


class TestReadValue:
    def test_reads_and_unquotes(self):
        assert envfile.read_value(EXAMPLE, "APP_NAME") == "Invoice Ninja"
        assert envfile.read_value(EXAMPLE, "DB_PASSWORD") == ""
        assert envfile.read_value(EXAMPLE, "MISSING") is None
