"""Integration tests for request execution against the mock server.

Tests use fixture_mock_server (session scoped) and exercise the full path:
URL normalization, headers, body encoding, transport and response normalization.
"""

import json
from pathlib import Path

import pytest

from reqly.errors import NETWORK_ERROR_MESSAGE, TIMEOUT_MESSAGE, NetworkError, RequestTimeoutError
from reqly.executor import Executor, execute_http_request
from reqly.models import AuthConfig, AuthType, BodyType, RequestBody, TransportConfig
from tests.conftest import make_key_value, make_request_config
from tests.integration.cli_runner import run_cli


def _echo(response) -> dict:
    assert response.status == 200, response.body
    return json.loads(response.body)


class TestRoundTrip:
    def test_status_headers_and_body(self, fixture_mock_server):
        response = execute_http_request(
            make_request_config(url=f"{fixture_mock_server.base_url}/status/201")
        )
        assert response.status == 201
        assert response.status_text == "Created"
        assert response.headers["x-test"] == "a"
        assert response.body == "hello"
        assert response.size == 5
        assert response.time >= 0

    def test_error_status_is_returned(self, fixture_mock_server):
        response = execute_http_request(
            make_request_config(url=f"{fixture_mock_server.base_url}/status/404")
        )
        assert response.status == 404
        assert response.status_text == "Not Found"
        assert response.body == "hello"

    def test_scheme_less_address(self, fixture_mock_server):
        response = execute_http_request(
            make_request_config(url=f"127.0.0.1:{fixture_mock_server.port}/echo")
        )
        assert _echo(response)["path"] == "/echo"

    @pytest.mark.parametrize("method", ["PUT", "PATCH", "DELETE", "OPTIONS"])
    def test_methods(self, fixture_mock_server, method):
        response = execute_http_request(
            make_request_config(url=f"{fixture_mock_server.base_url}/echo", method=method)
        )
        assert _echo(response)["method"] == method


class TestRequestAssembly:
    def test_query_params(self, fixture_mock_server):
        config = make_request_config(
            url=f"{fixture_mock_server.base_url}/echo?x=0",
            params=[
                make_key_value("q", "a b"),
                make_key_value("q", "c"),
                make_key_value("skip", "1", enabled=False),
            ],
        )
        assert _echo(execute_http_request(config))["query"] == [["x", "0"], ["q", "a b"], ["q", "c"]]

    def test_existing_query_sent_verbatim(self, fixture_mock_server):
        config = make_request_config(
            url=f"{fixture_mock_server.base_url}/echo?flag&x=1;y",
            params=[make_key_value("k", "v")],
        )
        assert _echo(execute_http_request(config))["raw_query"] == "flag&x=1;y&k=v"

    def test_basic_auth(self, fixture_mock_server):
        config = make_request_config(
            url=f"{fixture_mock_server.base_url}/echo",
            auth=AuthConfig(type=AuthType.BASIC, username="u", password="p"),
        )
        assert _echo(execute_http_request(config))["headers"]["authorization"] == "Basic dTpw"

    def test_api_key_and_custom_header(self, fixture_mock_server):
        config = make_request_config(
            url=f"{fixture_mock_server.base_url}/echo",
            headers=[make_key_value("X-Trace", "abc")],
            auth=AuthConfig(type=AuthType.API_KEY, api_key="k", api_key_header="X-API-Key"),
        )
        headers = _echo(execute_http_request(config))["headers"]
        assert headers["x-api-key"] == "k"
        assert headers["x-trace"] == "abc"

    def test_json_body(self, fixture_mock_server):
        config = make_request_config(
            url=f"{fixture_mock_server.base_url}/echo",
            method="POST",
            body=RequestBody(type=BodyType.JSON, content='{"a":1}'),
        )
        echoed = _echo(execute_http_request(config))
        assert echoed["headers"]["content-type"] == "application/json"
        assert echoed["body"] == '{"a":1}'

    def test_text_body_without_content_type(self, fixture_mock_server):
        config = make_request_config(
            url=f"{fixture_mock_server.base_url}/echo",
            method="POST",
            body=RequestBody(type=BodyType.TEXT, content="plain"),
        )
        echoed = _echo(execute_http_request(config))
        assert echoed["body"] == "plain"
        assert "content-type" not in echoed["headers"]

    def test_form_data_body(self, fixture_mock_server):
        config = make_request_config(
            url=f"{fixture_mock_server.base_url}/echo",
            method="POST",
            body=RequestBody(
                type=BodyType.FORM_DATA,
                form_data=[make_key_value("a", "1"), make_key_value("b", "2", enabled=False)],
            ),
        )
        echoed = _echo(execute_http_request(config))
        assert echoed["headers"]["content-type"].startswith("multipart/form-data; boundary=")
        assert 'name="a"' in echoed["body"]
        assert 'name="b"' not in echoed["body"]


class TestTransportBehavior:
    def test_redirect_followed(self, fixture_mock_server):
        response = execute_http_request(
            make_request_config(url=f"{fixture_mock_server.base_url}/redirect")
        )
        assert _echo(response)["path"] == "/echo"

    def test_redirect_not_followed(self, fixture_mock_server):
        response = execute_http_request(
            make_request_config(url=f"{fixture_mock_server.base_url}/redirect"),
            TransportConfig(follow_redirects=False),
        )
        assert response.status == 302
        assert response.status_text == "Found"

    def test_duplicate_headers_last_wins(self, fixture_mock_server):
        response = execute_http_request(
            make_request_config(url=f"{fixture_mock_server.base_url}/duplicate-headers")
        )
        assert response.headers["x-dup"] == "second"

    def test_executor_reuses_client(self, fixture_mock_server):
        with Executor() as executor:
            first = executor.execute(make_request_config(url=f"{fixture_mock_server.base_url}/status/200"))
            second = executor.execute(make_request_config(url=f"{fixture_mock_server.base_url}/status/204"))
        assert (first.status, second.status) == (200, 204)


class TestTransportErrors:
    def test_timeout(self, fixture_mock_server):
        config = make_request_config(url=f"{fixture_mock_server.base_url}/slow?seconds=3")
        with pytest.raises(RequestTimeoutError) as exc_info:
            execute_http_request(config, TransportConfig(timeout=0.5))
        assert str(exc_info.value) == TIMEOUT_MESSAGE

    def test_dripping_body_capped_by_timeout(self, fixture_mock_server):
        config = make_request_config(url=f"{fixture_mock_server.base_url}/drip?chunks=8&interval=0.5")
        response = execute_http_request(config, TransportConfig(timeout=1.0))

        assert response.status == 200
        assert response.body == "Failed to read response body: timed out after 1s"
        assert response.time < 2500

    def test_connection_refused(self, fixture_closed_port):
        config = make_request_config(url=f"http://127.0.0.1:{fixture_closed_port}/echo")
        with pytest.raises(NetworkError) as exc_info:
            execute_http_request(config, TransportConfig(timeout=5))
        assert str(exc_info.value) == NETWORK_ERROR_MESSAGE


class TestSendCommand:
    def _write_files(self, tmp_path: Path, port: int, path: str) -> tuple[Path, Path]:
        request = tmp_path / "request.yaml"
        request.write_text(f"method: GET\nurl: '{{{{host}}}}{path}'\n", encoding="utf-8")
        env = tmp_path / "env.yaml"
        env.write_text(
            f"name: local\nvariables:\n  - key: host\n    value: '127.0.0.1:{port}'\n",
            encoding="utf-8",
        )
        return request, env

    def test_send_prints_response(self, fixture_mock_server, tmp_path):
        request, env = self._write_files(tmp_path, fixture_mock_server.port, "/status/201")
        result = run_cli("send", "--request", str(request), "--env", str(env))

        assert result.returncode == 0, result.stderr
        output = json.loads(result.stdout)
        assert output["status"] == 201
        assert output["statusText"] == "Created"
        assert output["body"] == "hello"

    def test_send_unreachable(self, fixture_closed_port, tmp_path):
        request, env = self._write_files(tmp_path, fixture_closed_port, "/echo")
        result = run_cli("send", "--request", str(request), "--env", str(env))

        assert result.returncode == 1
        assert NETWORK_ERROR_MESSAGE in result.stderr

    def test_check_vars(self, fixture_mock_server, tmp_path):
        request, env = self._write_files(tmp_path, fixture_mock_server.port, "/echo")
        result = run_cli("check-vars", "--request", str(request), "--env", str(env))

        assert result.returncode == 0
        assert "All variables resolved" in result.stdout

    def test_send_with_assertions(self, fixture_mock_server, tmp_path):
        request = tmp_path / "request.yaml"
        request.write_text(
            f"""
method: POST
url: {fixture_mock_server.base_url}/echo
body:
  type: json
  content: '{{"name": "widget"}}'
assertions:
  - subject: status
    value: 200
  - subject: json
    key: $.method
    value: POST
  - subject: body
    op: include
    value: widget
  - subject: responseTime
    op: below
    value: 5000
  - name: wrong on purpose
    subject: header
    key: X-Not-There
    op: exists
""",
            encoding="utf-8",
        )
        result = run_cli("send", "--request", str(request))

        assert result.returncode == 1
        assert "Assertions: 4 passed, 1 failed" in result.stderr
        assert "FAIL wrong on purpose: Header 'X-Not-There' not found" in result.stderr
