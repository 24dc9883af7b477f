from tryit_engine.curl import build_curl_command, shell_quote
from tryit_engine.models import BuiltRequest, CurlBody, CurlFormEntry


class TestCurl:
    def test_headers_are_sorted(self):
        request = BuiltRequest(method="get", url="https://api.example.com/x", headers={"Z": "1", "A": "2"})
        assert build_curl_command(request) == (
            "curl -X 'GET' 'https://api.example.com/x' -H 'A: 2' -H 'Z: 1'"
        )

    def test_header_sort_ignores_case(self):
        request = BuiltRequest(
            method="GET", url="https://x.test/", headers={"x-b": "1", "X-a": "2", "Accept": "*/*"}
        )
        command = build_curl_command(request)
        assert command.index("'Accept: */*'") < command.index("'X-a: 2'") < command.index("'x-b: 1'")

    def test_raw_body_quotes_single_quotes(self):
        request = BuiltRequest(
            method="POST",
            url="https://x.test/notes",
            headers={"Content-Type": "application/json"},
            content='{"text":"it\'s"}',
            curl_body=CurlBody(kind="raw", value='{"text":"it\'s"}'),
        )
        assert build_curl_command(request) == (
            "curl -X 'POST' 'https://x.test/notes' -H 'Content-Type: application/json' "
            "--data-raw '{\"text\":\"it'\"'\"'s\"}'"
        )

    def test_multipart_entries(self):
        entries = (CurlFormEntry(name="name", value="Ann"), CurlFormEntry(name="bio", value="a b"))
        request = BuiltRequest(
            method="POST",
            url="https://x.test/people",
            headers={},
            form_fields=[("name", (None, "Ann")), ("bio", (None, "a b"))],
            curl_body=CurlBody(kind="multipart", entries=entries),
        )
        assert build_curl_command(request) == (
            "curl -X 'POST' 'https://x.test/people' -F 'name=Ann' -F 'bio=a b'"
        )

    def test_shell_quote(self):
        assert shell_quote("") == "''"
        assert shell_quote("plain") == "'plain'"
        assert shell_quote("a'b") == "'a'\"'\"'b'"
