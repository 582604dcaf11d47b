import tarfile
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError
from dockerfile_build.engine import DockerEngine, build_query, read_dockerignore
from dockerfile_build.parameters import BuildArgs, NoCache, PullNewerImage, encode_build_args
from dockerfile_build.progress import BuildStreamError


def api_client(messages=None):
    client = MagicMock()
    client._url.return_value = "http+docker://localhost/v1.45/build"
    client._stream_helper.return_value = iter(messages or [])
    return client


@pytest.fixture
def context(tmp_path):
    (tmp_path / "Dockerfile").write_text("FROM alpine:3.20\nCOPY app.txt /\n")
    (tmp_path / "app.txt").write_text("hello\n")
    (tmp_path / "secret.env").write_text("TOKEN=x\n")
    (tmp_path / ".dockerignore").write_text("# local files\n*.env\n\n")
    return tmp_path


class TestBuildQuery:
    def test_minimal(self):
        assert build_query(None, []) == "rm=1"

    def test_name_and_options(self):
        query = build_query("spotify/foo:1.0", [PullNewerImage(), NoCache()])
        assert query == "rm=1&t=spotify/foo:1.0&pull=1&nocache=1"

    def test_build_args_passed_verbatim(self):
        payload = encode_build_args({"A": "x y"})
        query = build_query(None, [BuildArgs(payload)])
        assert query == f"rm=1&buildargs={payload}"
        assert "%20" in query


class TestReadDockerignore:
    def test_missing(self, tmp_path):
        assert read_dockerignore(tmp_path) is None

    def test_patterns(self, context):
        assert read_dockerignore(context) == ["*.env"]


class TestDockerEngine:
    def test_build_streams_messages(self, context):
        messages = [{"stream": "Step 1/2 : FROM alpine:3.20\n"}, {"stream": "Successfully built abc123def456\n"}]
        client = api_client(messages)
        received = []

        DockerEngine(client).build(context, "spotify/foo:1.0", received.append, [PullNewerImage()])

        assert received == messages
        url = client._post.call_args.args[0]
        assert url == "http+docker://localhost/v1.45/build?rm=1&t=spotify/foo:1.0&pull=1"
        kwargs = client._post.call_args.kwargs
        assert kwargs["headers"] == {"Content-Type": "application/tar"}
        assert kwargs["stream"] is True
        client._raise_for_status.assert_called_once()

    def test_build_context_honours_dockerignore(self, context):
        client = api_client()
        archived = []

        def capture(url, data, **kwargs):
            with tarfile.open(fileobj=data) as archive:
                archived.extend(archive.getnames())
            return MagicMock()

        client._post.side_effect = capture

        DockerEngine(client).build(context, None, lambda message: None, [])

        assert "Dockerfile" in archived
        assert "app.txt" in archived
        assert "secret.env" not in archived

    def test_build_error_status_propagates(self, context):
        client = api_client()
        client._raise_for_status.side_effect = APIError("500 Server Error")
        received = []

        with pytest.raises(APIError):
            DockerEngine(client).build(context, None, received.append, [])

        assert received == []

    def test_build_response_closed_when_handler_fails(self, context):
        client = api_client([{"error": "boom"}])

        def failing(message):
            raise BuildStreamError(message["error"])

        with pytest.raises(BuildStreamError):
            DockerEngine(client).build(context, None, failing, [])

        client._post.return_value.close.assert_called_once()

    def test_tag(self):
        client = MagicMock()
        DockerEngine(client).tag("abc123", "spotify/foo", "latest", force=True)
        client.tag.assert_called_once_with("abc123", "spotify/foo", tag="latest", force=True)

    def test_push(self):
        client = MagicMock()
        client.push.return_value = iter([{"status": "Pushed", "id": "layer1"}])
        received = []
        auth = {"username": "bot", "password": "secret"}

        DockerEngine(client).push("spotify/foo", "1.0", received.append, auth_config=auth)

        client.push.assert_called_once_with("spotify/foo", tag="1.0", stream=True, decode=True, auth_config=auth)
        assert received == [{"status": "Pushed", "id": "layer1"}]

    def test_remove_image(self):
        client = MagicMock()
        DockerEngine(client).remove_image("abc123", force=True, prune=False)
        client.remove_image.assert_called_once_with("abc123", force=True, noprune=True)

    def test_client_created_lazily(self, monkeypatch):
        created = []
        monkeypatch.setattr("dockerfile_build.engine.get_docker_client", lambda: created.append(1) or MagicMock())

        engine = DockerEngine()
        assert created == []
        engine.tag("abc123", "spotify/foo", "1.0")
        engine.tag("abc123", "spotify/foo", "1.1")
        assert created == [1]
