import pytest

from tests.helpers import PNG_BYTES, start_server


@pytest.fixture
def image_folder(tmp_path):
    folder = tmp_path / "images"
    folder.mkdir()
    (folder / "cover.png").write_bytes(PNG_BYTES)
    nested = folder / "nested"
    nested.mkdir()
    (nested / "thumb.jpg").write_bytes(b"\xff\xd8\xff\xe0 jpeg body")
    return folder


@pytest.fixture
def running_server(image_folder):
    server, thread = start_server(image_folder)
    yield server
    server.shutdown(5)
    thread.join(5)


@pytest.fixture
def base_url(running_server):
    host, port = running_server.server_address
    return f"http://{host}:{port}"
