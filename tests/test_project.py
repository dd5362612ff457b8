"""Tests for fetching snapshots and file-level helpers."""

import httpx
import pytest

from sft_stackblitz import (
    FetchFailed,
    fetch_snapshot,
    filter_paths,
    get_file,
    guess_mime_type,
    list_paths,
    project_summary,
    suggest_paths,
)

from helpers import make_snapshot

PAYLOAD = {
    "project": {
        "id": 42,
        "title": "Starter",
        "description": None,
        "slug": "stackblitz-starters-rf7brvcm",
        "preset": "node",
        "visibility": "public",
        "appFiles": {
            "f1": {
                "name": "index.js",
                "type": "file",
                "contents": "console.log('hi')\n",
                "fullPath": "src/index.js",
                "lastModified": 1700000000000,
            },
            "f2": {
                "name": "package.json",
                "type": "file",
                "contents": "{}",
                "fullPath": "package.json",
                "lastModified": 1700000000001,
            },
        },
    }
}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestFetchSnapshot:
    async def test_decodes_project_and_files(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PAYLOAD)

        async with mock_client(handler) as client:
            snapshot = await fetch_snapshot("stackblitz-starters-rf7brvcm", client=client)

        assert seen[0].url.path == "/api/projects/stackblitz-starters-rf7brvcm"
        assert seen[0].url.params["include_files"] == "true"
        assert snapshot.id == 42
        assert snapshot.title == "Starter"
        assert snapshot.description == ""
        assert snapshot.files["f1"].full_path == "src/index.js"
        assert snapshot.files["f1"].contents == "console.log('hi')\n"
        assert snapshot.files["f2"].last_modified == 1700000000001

    async def test_project_id_is_escaped(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PAYLOAD)

        async with mock_client(handler) as client:
            await fetch_snapshot("a/b", client=client)

        assert seen[0].url.raw_path.startswith(b"/api/projects/a%2Fb")

    async def test_non_success_status_raises_fetch_failed(self):
        async with mock_client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(FetchFailed) as exc_info:
                await fetch_snapshot("missing", client=client)

        assert exc_info.value.status == 404
        assert exc_info.value.project_id == "missing"
        assert "404 Not Found" in str(exc_info.value)

    async def test_transport_errors_pass_through(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(httpx.ConnectError):
                await fetch_snapshot("anything", client=client)

    async def test_payload_without_project(self):
        async with mock_client(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(AssertionError, match="'project' key"):
                await fetch_snapshot("odd", client=client)


class TestFileAccess:
    @pytest.fixture
    def snapshot(self):
        return make_snapshot(
            {
                "src/utils.ts": "export {}",
                "package.json": "{}",
                "src/index.ts": "import './utils'",
                "src-old/index.ts": "",
            }
        )

    def test_list_paths_sorted(self, snapshot):
        assert list_paths(snapshot) == [
            "package.json",
            "src-old/index.ts",
            "src/index.ts",
            "src/utils.ts",
        ]

    def test_get_file(self, snapshot):
        assert get_file(snapshot, "src/index.ts").contents == "import './utils'"

    def test_get_file_missing(self, snapshot):
        assert get_file(snapshot, "src/missing.ts") is None
        assert get_file(snapshot, "index.ts") is None

    def test_filter_paths_by_folder(self, snapshot):
        paths = list_paths(snapshot)

        assert filter_paths(paths, "src") == ["src/index.ts", "src/utils.ts"]
        assert filter_paths(paths, "src/") == ["src/index.ts", "src/utils.ts"]
        assert filter_paths(paths, "package.json") == ["package.json"]
        assert filter_paths(paths, "") == paths

    def test_suggest_paths(self, snapshot):
        paths = list_paths(snapshot)

        assert suggest_paths(paths, "lib/index.ts") == ["src-old/index.ts", "src/index.ts"]
        assert suggest_paths(paths, "nothing.rs") == []
        assert suggest_paths(paths, "src/") == []
        assert len(suggest_paths(paths, ".ts", limit=2)) == 2

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("src/index.ts", "text/typescript"),
            ("App.JSX", "text/javascript"),
            ("package.json", "application/json"),
            ("logo.svg", "image/svg+xml"),
            ("Makefile", "text/plain"),
            ("archive.tar.gz", "text/plain"),
        ],
    )
    def test_guess_mime_type(self, path, expected):
        assert guess_mime_type(path) == expected

    def test_project_summary(self, snapshot):
        assert project_summary("demo", snapshot) == {
            "project_id": "demo",
            "title": "Demo",
            "description": "A demo project",
            "preset": "node",
            "visibility": "public",
            "file_count": 4,
        }
