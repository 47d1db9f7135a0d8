import paramiko
import requests

from fakes import FakeExecutor, FakeHttp, FakeProbe

from invoice_deployer.orchestrator import Verifier


def _verifier(executor=None, probe=None, http=None):
    return Verifier(
        executor or FakeExecutor(),
        probe or FakeProbe(default=True),
        http_get=http or FakeHttp(200),
    )


class TestVerifier:
    def test_all_checks_pass(self):
        http = FakeHttp(200)
        executor = FakeExecutor().on("monitor-invoiceninja.sh", stdout="Nginx Status: active")

        warnings = _verifier(executor=executor, http=http).run("203.0.113.10")

        assert warnings == []
        url, kwargs = http.calls[0]
        assert url == "http://203.0.113.10"
        assert kwargs["allow_redirects"] is False
        assert executor.commands == ["sudo /usr/local/bin/monitor-invoiceninja.sh"]

    def test_http_status_other_than_200_warns(self):
        warnings = _verifier(http=FakeHttp(502)).run("203.0.113.10")

        assert [w.check for w in warnings] == ["http"]
        assert "502" in str(warnings[0])

    def test_redirect_is_not_followed_and_warns(self):
        warnings = _verifier(http=FakeHttp(301)).run("203.0.113.10")
        assert [w.check for w in warnings] == ["http"]

    def test_unreachable_http_warns(self):
        http = FakeHttp(error=requests.ConnectionError("connection refused"))
        warnings = _verifier(http=http).run("203.0.113.10")
        assert [w.check for w in warnings] == ["http"]

    def test_ssh_failure_warns(self):
        probe = FakeProbe(default=False)
        warnings = _verifier(probe=probe).run("203.0.113.10")

        assert [w.check for w in warnings] == ["ssh"]
        assert probe.calls == [("203.0.113.10", "echo 'SSH working'")]

    def test_status_helper_failure_warns(self):
        executor = FakeExecutor().on("monitor-invoiceninja.sh", exit_status=127, stderr="not found")
        warnings = _verifier(executor=executor).run("203.0.113.10")
        assert [w.check for w in warnings] == ["status"]

    def test_every_check_runs_even_when_all_fail(self):
        executor = FakeExecutor().on("monitor-invoiceninja.sh", exit_status=1)
        warnings = _verifier(
            executor=executor,
            probe=FakeProbe(default=False),
            http=FakeHttp(500),
        ).run("203.0.113.10")

        assert [w.check for w in warnings] == ["http", "ssh", "status"]

    def test_dropped_session_during_status_check_warns(self):
        class DroppedSession(FakeExecutor):
            def run(self, command, *, timeout=None):
                raise paramiko.SSHException("SSH session not active")

        warnings = _verifier(executor=DroppedSession()).run("203.0.113.10")

        assert [w.check for w in warnings] == ["status"]
        assert "SSH session not active" in str(warnings[0])
