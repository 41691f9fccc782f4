# -*- coding: utf-8 -*-

from io import BytesIO
import gzip
import os

import pytest

from hashdrop import ContentStore, NotFound, RenameFailed, SpoolWriteFailed
from hashdrop.spool import PREFIX
from hashdrop.utils import is_identifier


@pytest.fixture
def testpath(tmpdir):
    return tmpdir.mkdir("hashdrop")


@pytest.fixture
def store(testpath):
    return ContentStore(str(testpath))


def stage(store, data):
    return store.spool.write(BytesIO(data), 10 ** 9)[0]


def staged_files(testpath):
    return [name for name in os.listdir(str(testpath)) if name.startswith(PREFIX)]


def read(store, identifier):
    with store.open(identifier, decompress=True) as f:
        return f.read()


def assert_published(store, testpath, obj):
    directory = os.path.join(str(testpath), obj.id)

    assert is_identifier(obj.id)
    assert len(obj.id) == store.id_length
    assert sorted(os.listdir(directory)) == sorted([obj.name, obj.id + ".json.gz"])
    assert store.load_metadata(obj.id) == obj
    assert obj.id in store
    assert staged_files(testpath) == []


def test_store_finalize(store, testpath):
    chunks = [b"a" * 10, b"b" * 10, b"c" * 5]
    paths = [stage(store, chunk) for chunk in chunks]

    obj = store.finalize(paths, "foo.txt")

    assert_published(store, testpath, obj)
    assert obj.size == 25
    assert obj.name == "foo.txt"
    assert read(store, obj.id) == b"".join(chunks)


def test_store_finalize_removes_chunks(store, testpath):
    paths = [stage(store, b"foo"), stage(store, b"bar")]
    assert len(staged_files(testpath)) == 2

    store.finalize(paths, "foo.txt")

    assert staged_files(testpath) == []


def test_store_finalize_missing_chunk(store, testpath):
    paths = [stage(store, b"foo"), "/sharetemp-missing", stage(store, b"baz")]

    with pytest.raises(SpoolWriteFailed):
        store.finalize(paths, "foo.txt")

    assert staged_files(testpath) == []
    assert len(store) == 0


def test_store_finalize_no_filename(store, testpath):
    paths = [stage(store, b"foo")]

    with pytest.raises(ValueError):
        store.finalize(paths, "")

    assert staged_files(testpath) == []


def test_store_publish_single_shot(store, testpath):
    staged, n = store.spool.write(BytesIO(b"foo"), 100, compress=True)

    obj = store.publish_single_shot(staged, "../foo.txt", n)

    assert_published(store, testpath, obj)
    assert obj.name == "foo.txt"
    assert obj.size == 3
    assert read(store, obj.id) == b"foo"


def test_store_payload_is_gzipped(store):
    obj = store.finalize([stage(store, b"foo")], "foo.txt")

    with store.open(obj.id) as f:
        assert gzip.decompress(f.read()) == b"foo"


def test_store_same_content_same_id(store, testpath):
    a = store.finalize([stage(store, b"foo")], "a.txt")
    b = store.finalize([stage(store, b"foo")], "b.txt")

    assert a.id == b.id
    assert a.hash == b.hash
    # The second publish replaces the first one entirely.
    assert_published(store, testpath, b)
    assert not store.exists(a.id, "a.txt")
    assert len(store) == 1


def test_store_different_content(store):
    a = store.finalize([stage(store, b"foo")], "foo.txt")
    b = store.finalize([stage(store, b"bar")], "foo.txt")

    assert a.id != b.id
    assert sorted(store) == sorted([a.id, b.id])
    assert len(store) == 2


def test_store_on_publish(testpath):
    published = []
    store = ContentStore(str(testpath), on_publish=published.append)

    obj = store.finalize([stage(store, b"foo")], "foo.txt")

    assert published == [obj]


def test_store_publish_failure(store, testpath, monkeypatch):
    def broken(obj):
        raise OSError("disk full")

    monkeypatch.setattr(store, "_write_sidecar", broken)
    staged, n = store.spool.write(BytesIO(b"foo"), 100, compress=True)

    with pytest.raises(RenameFailed):
        store.publish_single_shot(staged, "foo.txt", n)

    assert os.listdir(str(testpath)) == []


@pytest.mark.parametrize(
    "data,filename,content_type,flags",
    [
        (b"hello world", "foo.txt", "text/plain", ["is_ascii", "is_text"]),
        (b"hello world", "foo", "text/plain", ["is_ascii", "is_text"]),
        (b"\x89PNG\r\n\x1a\n\x00\x00", "foo.bin", "image/png", ["is_image"]),
        (b"ID3\x04\x00\xff", "foo.mp3", "audio/mpeg", ["is_audio"]),
        (b"\x00\x00\x00\x18ftypmp42\xff", "foo", "video/mp4", ["is_video"]),
        (b"\xff\xfe\x00\x01", "foo", "application/octet-stream", []),
    ],
)
def test_store_content_type(store, data, filename, content_type, flags):
    obj = store.finalize([stage(store, data)], filename)

    assert obj.content_type == content_type
    for flag in ["is_ascii", "is_text", "is_image", "is_audio", "is_video"]:
        assert getattr(obj, flag) is (flag in flags)


def test_store_load_metadata_not_found(store):
    with pytest.raises(NotFound):
        store.load_metadata("abc123")

    assert store.get("abc123") is None


@pytest.mark.parametrize("identifier", ["", "..", "../etc", "ABC"])
def test_store_load_metadata_invalid(store, identifier):
    with pytest.raises(NotFound):
        store.load_metadata(identifier)


def test_store_load_metadata_corrupt(store, testpath):
    testpath.mkdir("abc123").join("abc123.json.gz").write(b"not gzip")

    with pytest.raises(NotFound):
        store.load_metadata("abc123")

    assert list(store.objects()) == []


def test_store_unpublished_directory_hidden(store, testpath):
    testpath.mkdir("abc123").join("foo.txt").write(b"foo")

    assert list(store.identifiers()) == []
    assert "abc123" not in store
    assert len(store) == 0


def test_store_open_not_found(store):
    with pytest.raises(NotFound):
        with store.open("abc123"):
            pass


def test_store_exists(store):
    obj = store.finalize([stage(store, b"foo")], "foo.txt")

    assert store.exists(obj.id)
    assert store.exists(obj.id, "foo.txt")
    assert not store.exists(obj.id, "bar.txt")
    assert not store.exists("abc123")


def test_store_delete(store, testpath):
    obj = store.finalize([stage(store, b"foo")], "foo.txt")

    store.delete(obj.id)

    assert os.listdir(str(testpath)) == []
    with pytest.raises(NotFound):
        store.delete(obj.id)


def test_store_size(store):
    a = store.finalize([stage(store, b"foo")], "foo.txt")
    b = store.finalize([stage(store, os.urandom(2000))], "bar.bin")

    assert store.size(b.id) > 2000
    assert store.size() == store.size(a.id) + store.size(b.id)


def test_store_objects(store):
    a = store.finalize([stage(store, b"foo")], "foo.txt")
    b = store.finalize([stage(store, b"bar")], "bar.txt")

    assert sorted(store.objects()) == sorted([a, b])
