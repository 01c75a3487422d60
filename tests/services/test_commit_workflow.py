import asyncio
import json
from datetime import datetime, timezone

import pytest

from services.content_repo import StoredFile, UpstreamError
from services.editor.workflow import (
    AboutNotDeletable,
    CommitWorkflow,
    EditorState,
    MissingShaForDelete,
    MissingShaForRename,
    NoPostLoaded,
    WorkflowError,
)
from shared.config import settings
from shared.posts import ABOUT_PATH, to_iso
from tests.helpers import words_record

NOW = datetime(2024, 7, 1, 9, 30, tzinfo=timezone.utc)
OLD_PATH = "Words/2024-01-01_old-title.json"
NEW_PATH = "Words/2024-01-01_new-title.json"


class RecordingGateway:
    """Gateway double that records calls and can be told to fail."""

    def __init__(self, files=None, error=None):
        self.files = files or {}
        self.error = error
        self.calls = []

    async def list_folder(self, folder):
        raise AssertionError("not used")

    async def get_file(self, path):
        content, sha = self.files[path]
        return StoredFile(content=content, sha=sha, path=path)

    async def commit_file(self, path, content, message, sha=None):
        self.calls.append(("commit", path, sha, message))
        if self.error:
            raise self.error
        return {"content": {"path": path, "sha": "new-sha"}}

    async def delete_file(self, path, sha, message):
        self.calls.append(("delete", path, sha, message))
        if self.error:
            raise self.error
        return {"commit": {"sha": "c1"}}

    async def rename_file(self, old_path, old_sha, new_path, content, message):
        self.calls.append(("rename", old_path, old_sha, new_path))
        if self.error:
            raise self.error
        return {"content": {"path": new_path, "sha": "renamed-sha"}}


def _workflow(gateway, **kwargs):
    return CommitWorkflow(gateway, clock=lambda: NOW, **kwargs)


def test_new_post_commits_create_at_derived_path(github, repo_client):
    workflow = _workflow(repo_client)
    workflow.start_new("Words")
    workflow.edit(title="Hello World", date="2024-05-04", text="# Hi")

    result = asyncio.run(workflow.submit())

    path = "Words/2024-05-04_hello-world.json"
    assert result is not None
    assert workflow.state == EditorState.SUCCEEDED
    assert workflow.message == "Post created"
    assert workflow.content_url.endswith(path)
    assert workflow.loaded.path == path
    assert workflow.loaded.sha == github.sha(path)

    stored = github.read_json(path)
    assert stored["type"] == "Words"
    assert stored["id"] == f"words_{int(NOW.timestamp() * 1000)}"
    assert stored["slug"] == "hello-world"
    assert stored["date"] == "2024-05-04T00:00:00.000Z"
    assert stored["createdAt"] == stored["updatedAt"] == to_iso(NOW)
    assert stored["isActive"] is True
    assert github.requests[-1][2]["message"] == "Create Words Hello World via admin UI"


def test_retitle_renames_file_and_deletes_old_copy(github, repo_client):
    github.put_raw(OLD_PATH, json.dumps(words_record("Old Title", "2024-01-01")), sha="abc123")
    workflow = _workflow(repo_client)
    asyncio.run(workflow.load(OLD_PATH))
    assert workflow.state == EditorState.LOADED
    assert workflow.form.date == "2024-01-01"

    workflow.edit(title="New Title")
    asyncio.run(workflow.submit())

    writes = [(m, p, body) for m, p, body in github.requests if m != "GET"]
    assert [(m, p) for m, p, _ in writes] == [("PUT", NEW_PATH), ("DELETE", OLD_PATH)]
    assert writes[1][2]["sha"] == "abc123"
    assert OLD_PATH not in github.files
    assert github.read_json(NEW_PATH)["slug"] == "new-title"
    assert github.read_json(NEW_PATH)["createdAt"] == "2024-01-01T00:00:00.000Z"
    assert workflow.loaded.path == NEW_PATH
    assert workflow.loaded.sha == github.sha(NEW_PATH)
    assert workflow.message == "Post updated"


def test_unchanged_path_updates_in_place_with_loaded_sha(github, repo_client):
    github.put_raw(OLD_PATH, json.dumps(words_record("Old Title", "2024-01-01")), sha="abc123")
    workflow = _workflow(repo_client)
    asyncio.run(workflow.load(OLD_PATH))

    workflow.edit(text="Rewritten")
    asyncio.run(workflow.submit())

    method, path, payload = github.requests[-1]
    assert (method, path) == ("PUT", OLD_PATH)
    assert payload["sha"] == "abc123"
    assert payload["message"] == "Update Words post: Old Title"
    assert github.read_json(OLD_PATH)["text"] == "Rewritten"
    assert workflow.loaded.sha == github.sha(OLD_PATH)


def test_failed_create_during_rename_keeps_old_file_and_reports_upstream_message():
    error = UpstreamError(422, {"message": "path already exists"})
    gateway = RecordingGateway(
        files={OLD_PATH: (words_record("Old Title", "2024-01-01"), "abc123")}, error=error
    )
    workflow = _workflow(gateway)
    asyncio.run(workflow.load(OLD_PATH))
    workflow.edit(title="New Title")

    assert asyncio.run(workflow.submit()) is None

    assert workflow.state == EditorState.FAILED
    assert workflow.error == "path already exists"
    assert workflow.loaded.path == OLD_PATH
    assert workflow.loaded.sha == "abc123"
    assert [call[0] for call in gateway.calls] == ["rename"]


def test_failed_rename_create_does_not_delete_against_real_client(github, repo_client):
    github.put_raw(OLD_PATH, json.dumps(words_record("Old Title", "2024-01-01")), sha="abc123")
    github.fail("PUT", NEW_PATH, 422)
    workflow = _workflow(repo_client)
    asyncio.run(workflow.load(OLD_PATH))
    workflow.edit(title="New Title")

    asyncio.run(workflow.submit())

    assert workflow.state == EditorState.FAILED
    assert workflow.error == "forced 422"
    assert OLD_PATH in github.files
    assert not any(method == "DELETE" for method, _, _ in github.requests)


def test_stale_sha_fails_and_keeps_loaded_version(github, repo_client):
    github.put_raw(OLD_PATH, json.dumps(words_record("Old Title", "2024-01-01")), sha="abc123")
    workflow = _workflow(repo_client)
    asyncio.run(workflow.load(OLD_PATH))
    # Someone else writes the file after it was loaded.
    github.put_json(OLD_PATH, words_record("Other edit", "2024-01-01"))

    workflow.edit(text="Mine")
    asyncio.run(workflow.submit())

    assert workflow.state == EditorState.FAILED
    assert "does not match" in workflow.error
    assert workflow.loaded.sha == "abc123"
    assert github.read_json(OLD_PATH)["title"] == "Other edit"


def test_rename_left_incomplete_moves_to_new_copy(github, repo_client):
    github.put_raw(OLD_PATH, json.dumps(words_record("Old Title", "2024-01-01")), sha="abc123")
    github.fail("DELETE", OLD_PATH, 409)
    workflow = _workflow(repo_client)
    asyncio.run(workflow.load(OLD_PATH))
    workflow.edit(title="New Title")

    asyncio.run(workflow.submit())

    assert workflow.state == EditorState.FAILED
    assert OLD_PATH in workflow.error and NEW_PATH in workflow.error
    assert workflow.loaded.path == NEW_PATH
    assert workflow.loaded.sha == github.sha(NEW_PATH)


def test_validation_errors_stop_before_any_request():
    gateway = RecordingGateway()
    workflow = _workflow(gateway)
    workflow.start_new("Words")
    workflow.edit(title="  ", date="not a date", metadata_text="{oops")

    assert asyncio.run(workflow.submit()) is None

    assert workflow.state == EditorState.EDITING
    assert workflow.errors == [
        "Title is required",
        "Valid date is required",
        "Invalid JSON in metadata",
    ]
    assert gateway.calls == []


def test_non_string_video_url_is_reported_not_raised():
    path = "Motion/2024-01-01_clip.json"
    record = {
        "type": "Motion",
        "title": "Clip",
        "date": "2024-01-01",
        "videoUrl": 42,
        "isActive": True,
    }
    gateway = RecordingGateway(files={path: (record, "m1")})
    workflow = _workflow(gateway)
    asyncio.run(workflow.load(path))
    workflow.edit(text="x")

    assert asyncio.run(workflow.submit()) is None

    assert workflow.state == EditorState.EDITING
    assert workflow.errors == ["Video URL must be a string"]
    assert gateway.calls == []


def test_non_string_metadata_links_load_as_text():
    path = "Sound/2024-01-01_tape.json"
    record = {
        "type": "Sound",
        "title": "Tape",
        "date": "2024-01-01",
        "isActive": True,
        "metadata": {"audioUrl": 7, "audioEmbed": None},
    }
    gateway = RecordingGateway(files={path: (record, "s1")})
    workflow = _workflow(gateway)
    asyncio.run(workflow.load(path))
    form = workflow.form

    assert form.audio_url == "7"
    assert form.audio_embed == ""
    assert workflow.validate() == []


def test_rename_without_sha_is_refused():
    gateway = RecordingGateway(files={OLD_PATH: (words_record("Old Title", "2024-01-01"), None)})
    workflow = _workflow(gateway)
    asyncio.run(workflow.load(OLD_PATH))
    workflow.edit(title="New Title")

    with pytest.raises(MissingShaForRename):
        asyncio.run(workflow.submit())
    assert workflow.state == EditorState.FAILED
    assert gateway.calls == []


def test_dry_run_reports_plan_without_committing():
    gateway = RecordingGateway(files={OLD_PATH: (words_record("Old Title", "2024-01-01"), "abc123")})
    workflow = _workflow(gateway, dry_run=True)
    asyncio.run(workflow.load(OLD_PATH))
    workflow.edit(title="New Title")

    assert asyncio.run(workflow.submit()) is None

    assert gateway.calls == []
    assert workflow.last_plan.kind == "rename"
    assert workflow.last_plan.original_sha == "abc123"
    assert workflow.message == f"Dry run: would rename {NEW_PATH}"


def test_about_updates_fixed_path_and_keeps_social_links():
    about = {
        "type": "About",
        "id": "about_1",
        "title": "About",
        "date": "2020-01-01T00:00:00.000Z",
        "isActive": True,
        "metadata": {"instagram": "https://instagram.test/me"},
        "text": "Hi",
    }
    gateway = RecordingGateway(files={ABOUT_PATH: (about, "about-sha")})
    workflow = _workflow(gateway)
    asyncio.run(workflow.load(ABOUT_PATH))
    assert workflow.form.instagram == "https://instagram.test/me"

    workflow.edit(title="About me", date="2024-02-02")
    asyncio.run(workflow.submit())

    assert gateway.calls == [("commit", ABOUT_PATH, "about-sha", "Update About post: About me")]
    metadata = workflow.loaded.content.metadata
    assert metadata["instagram"] == "https://instagram.test/me"
    assert metadata["substack"] == settings.SUBSTACK_URL


def test_new_about_gets_default_social_links():
    workflow = _workflow(RecordingGateway())
    form = workflow.start_new("About")
    assert form.instagram == settings.INSTAGRAM_URL
    assert form.substack == settings.SUBSTACK_URL


def test_sound_post_carries_embed_and_images():
    gateway = RecordingGateway()
    workflow = _workflow(gateway)
    workflow.start_new("Sound")
    workflow.edit(
        title="Song",
        date="2024-03-03",
        image="a.jpg, b.jpg",
        audio_embed="<iframe></iframe>",
    )
    post = workflow.build_post()

    assert post.image == ["a.jpg", "b.jpg"]
    assert post.image_width == "600px"
    assert post.audio_url is None
    assert post.audio_embed == "<iframe></iframe>"


def test_changing_type_of_new_post_resets_type_fields():
    workflow = _workflow(RecordingGateway())
    workflow.start_new("Motion")
    workflow.edit(title="Clip", video_url="https://video.test/1")
    form = workflow.edit(post_type="Lines")
    assert form.video_url == ""
    assert form.title == "Clip"


def test_type_of_loaded_post_cannot_change():
    gateway = RecordingGateway(files={OLD_PATH: (words_record("Old Title", "2024-01-01"), "abc123")})
    workflow = _workflow(gateway)
    asyncio.run(workflow.load(OLD_PATH))
    with pytest.raises(WorkflowError):
        workflow.edit(post_type="Lines")


def test_delete_sends_loaded_sha():
    gateway = RecordingGateway(files={OLD_PATH: (words_record("Old Title", "2024-01-01"), "abc123")})
    workflow = _workflow(gateway)
    asyncio.run(workflow.load(OLD_PATH))

    asyncio.run(workflow.delete())

    assert gateway.calls == [("delete", OLD_PATH, "abc123", "Delete post: Old Title")]
    assert workflow.state == EditorState.SUCCEEDED
    assert workflow.message == "Post deleted"
    assert workflow.loaded is None


def test_delete_refusals_happen_before_any_request():
    about = {"type": "About", "title": "About", "date": "2020-01-01"}
    gateway = RecordingGateway(
        files={
            ABOUT_PATH: (about, "about-sha"),
            OLD_PATH: (words_record("Old Title", "2024-01-01"), None),
        }
    )
    workflow = _workflow(gateway)

    with pytest.raises(NoPostLoaded):
        asyncio.run(workflow.delete())

    asyncio.run(workflow.load(ABOUT_PATH))
    with pytest.raises(AboutNotDeletable):
        asyncio.run(workflow.delete())

    asyncio.run(workflow.load(OLD_PATH))
    with pytest.raises(MissingShaForDelete):
        asyncio.run(workflow.delete())

    assert gateway.calls == []


def test_new_about_form_cannot_be_deleted():
    gateway = RecordingGateway()
    workflow = _workflow(gateway)
    workflow.start_new("About")

    with pytest.raises(AboutNotDeletable):
        asyncio.run(workflow.delete())
    assert gateway.calls == []


def test_failed_load_reports_error():
    workflow = _workflow(RecordingGateway(files={OLD_PATH: ({"type": "Nope"}, "s")}))
    assert asyncio.run(workflow.load(OLD_PATH)) is None
    assert workflow.state == EditorState.EMPTY
    assert "Unknown post type" in workflow.error


def test_newer_load_discards_older_one():
    class SlowGateway(RecordingGateway):
        async def get_file(self, path):
            if path == OLD_PATH:
                await asyncio.sleep(0.01)
            return await super().get_file(path)

    gateway = SlowGateway(
        files={
            OLD_PATH: (words_record("Old Title", "2024-01-01"), "abc123"),
            NEW_PATH: (words_record("New Title", "2024-01-01"), "def456"),
        }
    )
    workflow = _workflow(gateway)

    async def _run():
        return await asyncio.gather(workflow.load(OLD_PATH), workflow.load(NEW_PATH))

    first, second = asyncio.run(_run())

    assert first is None
    assert second.path == NEW_PATH
    assert workflow.loaded.path == NEW_PATH
