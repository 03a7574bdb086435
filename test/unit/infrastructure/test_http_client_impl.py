"""
HttpClientImpl 的 pytest 测试套件
覆盖：GET、页面抓取、重定向链、重定向上限、失败分类、编码修正
"""

import pytest
import requests
import requests_mock

from tarantula.crawl.domain.value_objects.fetch_result import FetchErrorKind
from tarantula.crawl.infrastructure.http_client_impl import HttpClientImpl


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def http_client():
    """创建 HttpClientImpl 实例并在测试后自动关闭"""
    client = HttpClientImpl(user_agent="TestBot/1.0", timeout=5, max_retries=0)
    yield client
    client.close()


def redirect_chain(m, hops, final_body="<html>done</html>", status=302):
    """登记 /r0 -> /r1 -> ... -> /r{hops} 的跳转链"""
    for i in range(hops):
        m.get(f"http://example.com/r{i}", status_code=status,
              headers={"Location": f"/r{i + 1}"})
    m.get(f"http://example.com/r{hops}", text=final_body,
          headers={"Content-Type": "text/html; charset=utf-8"})


# ============================================================================
# 初始化
# ============================================================================

class TestInitialization:

    def test_session_per_thread(self, http_client):
        import threading

        sessions = []
        t = threading.Thread(target=lambda: sessions.append(http_client._session))
        t.start()
        t.join()

        assert sessions[0] is not http_client._session

    def test_adapter_mounted(self, http_client):
        adapter = http_client._session.get_adapter("https://example.com")
        assert adapter.max_retries.total == 0

    def test_default_user_agent(self, http_client):
        assert http_client._session.headers["User-Agent"] == "TestBot/1.0"

    def test_single_attempt_session_is_separate(self):
        client = HttpClientImpl(timeout=5, max_retries=2)
        try:
            retrying = client._session_for()
            single = client._session_for(0)

            assert single is not retrying
            assert client._session_for(0) is single
            assert retrying.get_adapter("http://example.com").max_retries.total == 2
            assert single.get_adapter("http://example.com").max_retries.total == 0
        finally:
            client.close()


# ============================================================================
# get
# ============================================================================

class TestGet:

    def test_success(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/robots.txt", text="User-agent: *",
                  headers={"Content-Type": "text/plain"})

            response = http_client.get("http://example.com/robots.txt")

            assert response.is_success
            assert response.status_code == 200
            assert response.content == "User-agent: *"
            assert response.content_type == "text/plain"

    def test_http_error(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/missing", status_code=404)

            response = http_client.get("http://example.com/missing")

            assert not response.is_success
            assert response.status_code == 404
            assert response.error_message == "HTTP 404"

    def test_timeout(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/slow", exc=requests.exceptions.ReadTimeout)

            response = http_client.get("http://example.com/slow", timeout=1)

            assert not response.is_success
            assert response.is_timeout
            assert "超时" in response.error_message

    def test_connection_error(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/down", exc=requests.exceptions.ConnectionError)

            response = http_client.get("http://example.com/down")

            assert not response.is_success
            assert not response.is_timeout
            assert response.status_code == 0

    def test_custom_headers_sent(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/robots.txt", text="")
            http_client.get("http://example.com/robots.txt", headers={"User-Agent": "Other"})

            assert m.last_request.headers["User-Agent"] == "Other"


# ============================================================================
# fetch
# ============================================================================

class TestFetch:

    def test_success(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/", text="<html>ok</html>",
                  headers={"Content-Type": "text/html; charset=utf-8"})

            result = http_client.fetch("http://example.com/", "tarantula", 10)

            assert result.is_success
            assert result.is_html
            assert result.status_code == 200
            assert result.final_url == "http://example.com/"
            assert result.content == "<html>ok</html>"
            assert result.redirects == []
            assert result.elapsed_ms >= 0
            assert m.last_request.headers["User-Agent"] == "tarantula"

    def test_follows_redirects_and_records_chain(self, http_client):
        with requests_mock.Mocker() as m:
            redirect_chain(m, 2)

            result = http_client.fetch("http://example.com/r0", "tarantula", 2)

            assert result.is_success
            assert result.url == "http://example.com/r0"
            assert result.final_url == "http://example.com/r2"
            assert [(r.source, r.destination, r.status_code) for r in result.redirects] == [
                ("http://example.com/r0", "http://example.com/r1", 302),
                ("http://example.com/r1", "http://example.com/r2", 302),
            ]

    def test_redirect_limit_exceeded(self, http_client):
        with requests_mock.Mocker() as m:
            redirect_chain(m, 3)

            result = http_client.fetch("http://example.com/r0", "tarantula", 2)

            assert not result.is_success
            assert result.error_kind == FetchErrorKind.REDIRECT_LIMIT
            assert len(result.redirects) == 2
            # 不再继续跟随
            assert "http://example.com/r3" not in [r.url for r in m.request_history]

    def test_zero_redirects_allowed(self, http_client):
        with requests_mock.Mocker() as m:
            redirect_chain(m, 1, status=301)

            result = http_client.fetch("http://example.com/r0", "tarantula", 0)

            assert result.error_kind == FetchErrorKind.REDIRECT_LIMIT
            assert m.call_count == 1

    def test_ignore_redirects(self, http_client):
        with requests_mock.Mocker() as m:
            redirect_chain(m, 1, status=307)

            result = http_client.fetch("http://example.com/r0", "tarantula", 10, ignore_redirects=True)

            assert result.error_kind == FetchErrorKind.REDIRECT_LIMIT
            assert m.call_count == 1

    def test_ignore_redirects_without_redirect_succeeds(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/", text="<html></html>")

            result = http_client.fetch("http://example.com/", "tarantula", 10, ignore_redirects=True)

            assert result.is_success

    def test_absolute_redirect_to_other_host(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/", status_code=301, headers={"Location": "https://www.example.com/"})
            m.get("https://www.example.com/", text="<html></html>")

            result = http_client.fetch("http://example.com/", "tarantula", 5)

            assert result.final_url == "https://www.example.com/"
            assert result.redirects[0].status_code == 301

    def test_refused_hop_not_requested(self, http_client):
        seen = []

        def guard(hop):
            seen.append(hop.destination)
            return "robots_txt" if hop.destination.endswith("/r2") else None

        with requests_mock.Mocker() as m:
            redirect_chain(m, 2)

            result = http_client.fetch("http://example.com/r0", "tarantula", 10, redirect_guard=guard)

            assert [r.url for r in m.request_history] == [
                "http://example.com/r0", "http://example.com/r1",
            ]
            assert seen == ["http://example.com/r1", "http://example.com/r2"]
            assert result.error_kind == FetchErrorKind.REDIRECT_LIMIT
            assert result.final_url == "http://example.com/r1"
            assert result.redirects[-1].destination == "http://example.com/r2"
            assert "robots_txt" in result.error_message

    def test_http_error(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/gone", status_code=410)

            result = http_client.fetch("http://example.com/gone", "tarantula", 5)

            assert result.error_kind == FetchErrorKind.HTTP_ERROR
            assert result.status_code == 410
            assert result.content == ""

    def test_timeout(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/slow", exc=requests.exceptions.ConnectTimeout)

            result = http_client.fetch("http://example.com/slow", "tarantula", 5)

            assert result.error_kind == FetchErrorKind.TIMEOUT
            assert result.status_code == 0

    def test_connection_error(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/down", exc=requests.exceptions.ConnectionError)

            result = http_client.fetch("http://example.com/down", "tarantula", 5)

            assert result.error_kind == FetchErrorKind.CONNECTION

    def test_other_request_exception_is_connection_failure(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/bad", exc=requests.exceptions.InvalidURL)

            result = http_client.fetch("http://example.com/bad", "tarantula", 5)

            assert result.error_kind == FetchErrorKind.CONNECTION

    def test_failure_after_redirect_keeps_chain(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/a", status_code=302, headers={"Location": "/b"})
            m.get("http://example.com/b", status_code=500)

            result = http_client.fetch("http://example.com/a", "tarantula", 5)

            assert result.error_kind == FetchErrorKind.HTTP_ERROR
            assert result.final_url == "http://example.com/b"
            assert len(result.redirects) == 1

    def test_non_html_content_type(self, http_client):
        with requests_mock.Mocker() as m:
            m.get("http://example.com/file.pdf", content=b"%PDF-1.4",
                  headers={"Content-Type": "application/pdf"})

            result = http_client.fetch("http://example.com/file.pdf", "tarantula", 5)

            assert result.is_success
            assert not result.is_html

    def test_encoding_detected_when_header_missing(self, http_client):
        body = "<html><body>中文内容测试页面</body></html>".encode("utf-8")
        with requests_mock.Mocker() as m:
            m.get("http://example.com/zh", content=body, headers={"Content-Type": "text/html"})

            result = http_client.fetch("http://example.com/zh", "tarantula", 5)

            assert "中文内容" in result.content
