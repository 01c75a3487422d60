"""Fakes shared by the test suite."""

import base64
import hashlib
import json
from urllib.parse import unquote

import httpx

from services.content_repo import ContentRepoClient

API_BASE = "https://api.github.test"
OWNER = "owner"
REPO = "repo"
PREFIX = f"/repos/{OWNER}/{REPO}/contents/"


class FakeGitHub:
    """In-memory stand-in for the GitHub Contents API with sha checks."""

    def __init__(self) -> None:
        self.files: dict[str, tuple[str, str]] = {}
        self.requests: list[tuple[str, str, dict | None]] = []
        self.failures: dict[tuple[str, str], int] = {}
        self._writes = 0

    def _next_sha(self, path: str, text: str) -> str:
        self._writes += 1
        return hashlib.sha1(f"{path}:{self._writes}:{text}".encode()).hexdigest()

    def put_json(self, path: str, content) -> str:
        text = json.dumps(content, indent=2)
        sha = self._next_sha(path, text)
        self.files[path] = (text, sha)
        return sha

    def put_raw(self, path: str, text: str, sha: str = "raw-sha") -> None:
        self.files[path] = (text, sha)

    def read_json(self, path: str):
        return json.loads(self.files[path][0])

    def sha(self, path: str) -> str:
        return self.files[path][1]

    def fail(self, method: str, path: str, status: int) -> None:
        self.failures[(method, path)] = status

    # ------------------------------------------------------------------
    def handler(self, request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"].startswith("Bearer ")
        path = unquote(request.url.path[len(PREFIX):])
        payload = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, payload))

        status = self.failures.get((request.method, path))
        if status is not None:
            return httpx.Response(status, json={"message": f"forced {status}"})

        if request.method == "GET":
            return self._get(path)
        if request.method == "PUT":
            return self._put(path, payload)
        if request.method == "DELETE":
            return self._delete(path, payload)
        return httpx.Response(405, json={"message": "Method not allowed"})

    def _entry(self, path: str) -> dict:
        return {
            "type": "file",
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": self.files[path][1],
            "download_url": f"https://raw.github.test/{path}",
        }

    def _get(self, path: str) -> httpx.Response:
        if path in self.files:
            text, sha = self.files[path]
            encoded = base64.b64encode(text.encode()).decode()
            wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
            body = {**self._entry(path), "content": wrapped, "encoding": "base64"}
            return httpx.Response(200, json=body)

        listing = []
        dirs = set()
        for file_path in sorted(self.files):
            if not file_path.startswith(path + "/"):
                continue
            rest = file_path[len(path) + 1:]
            if "/" in rest:
                dirs.add(rest.split("/", 1)[0])
            else:
                listing.append(self._entry(file_path))
        for name in sorted(dirs):
            listing.append({"type": "dir", "name": name, "path": f"{path}/{name}"})
        if listing:
            return httpx.Response(200, json=listing)
        return httpx.Response(404, json={"message": "Not Found"})

    def _put(self, path: str, payload: dict) -> httpx.Response:
        current = self.files.get(path)
        sha = payload.get("sha")
        if current is not None and not sha:
            return httpx.Response(
                422, json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."}
            )
        if current is not None and sha != current[1]:
            return httpx.Response(
                409, json={"message": f"{path} does not match {sha}"}
            )
        text = base64.b64decode(payload["content"]).decode()
        new_sha = self._next_sha(path, text)
        self.files[path] = (text, new_sha)
        body = {
            "content": {
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "sha": new_sha,
                "html_url": f"https://github.test/{OWNER}/{REPO}/blob/main/{path}",
            },
            "commit": {"sha": f"commit-{self._writes}", "message": payload["message"]},
        }
        return httpx.Response(201 if current is None else 200, json=body)

    def _delete(self, path: str, payload: dict) -> httpx.Response:
        current = self.files.get(path)
        if current is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if payload.get("sha") != current[1]:
            return httpx.Response(409, json={"message": f"{path} does not match"})
        del self.files[path]
        self._writes += 1
        return httpx.Response(
            200,
            json={"content": None, "commit": {"sha": f"commit-{self._writes}"}},
        )


def github_http(github: FakeGitHub) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=API_BASE, transport=httpx.MockTransport(github.handler))


def make_repo_client(github: FakeGitHub) -> ContentRepoClient:
    return ContentRepoClient(github_http(github), token="gh-token", owner=OWNER, repo=REPO)


def words_record(title: str, date: str, *, active: bool = True, **extra) -> dict:
    record = {
        "type": "Words",
        "id": f"words_{len(title)}",
        "slug": title.lower().replace(" ", "-"),
        "title": title,
        "date": date,
        "description": "",
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-01T00:00:00.000Z",
        "isActive": active,
        "metadata": {},
        "text": "Body",
    }
    record.update(extra)
    return record
