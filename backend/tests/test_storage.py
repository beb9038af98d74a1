from unittest.mock import MagicMock

import pytest
import requests

from streamverse.errors import StorageUnavailable
from streamverse.storage.client import IpfsStorage, LocalFileStorage

CID = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"


def test_local_reads_exact_range(tmp_path):
    (tmp_path / CID).write_bytes(bytes(range(100)))
    storage = LocalFileStorage(tmp_path)
    assert storage.read_range(CID, 10, 20) == bytes(range(10, 20))
    assert storage.ping()


def test_local_missing_object(tmp_path):
    with pytest.raises(StorageUnavailable):
        LocalFileStorage(tmp_path).read_range(CID, 0, 10)


def test_local_short_read(tmp_path):
    (tmp_path / CID).write_bytes(b"abc")
    with pytest.raises(StorageUnavailable) as ei:
        LocalFileStorage(tmp_path).read_range(CID, 0, 10)
    assert ei.value.detail == "storage_short_read"


def test_local_rejects_path_like_cid(tmp_path):
    with pytest.raises(StorageUnavailable):
        LocalFileStorage(tmp_path).read_range("../../etc/passwd", 0, 10)


def _session(content: bytes = b"", exc: Exception | None = None) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    if exc is not None:
        session.post.side_effect = exc
    else:
        resp = MagicMock()
        resp.content = content
        resp.raise_for_status.return_value = None
        session.post.return_value = resp
    return session


def test_ipfs_cat_with_offset_and_length():
    session = _session(b"x" * 50)
    storage = IpfsStorage("http://ipfs:5001/api/v0/", timeout=3, session=session)
    assert storage.read_range(CID, 100, 150) == b"x" * 50
    session.post.assert_called_once_with(
        "http://ipfs:5001/api/v0/cat",
        params={"arg": CID, "offset": 100, "length": 50},
        timeout=3,
    )


def test_ipfs_empty_range_skips_request():
    session = _session()
    assert IpfsStorage("http://ipfs:5001/api/v0", session=session).read_range(CID, 5, 5) == b""
    session.post.assert_not_called()


def test_ipfs_transport_error():
    session = _session(exc=requests.ConnectionError("refused"))
    with pytest.raises(StorageUnavailable) as ei:
        IpfsStorage("http://ipfs:5001/api/v0", session=session).read_range(CID, 0, 10)
    assert ei.value.status_code == 502
    assert ei.value.retryable


def test_ipfs_short_read():
    session = _session(b"x" * 3)
    with pytest.raises(StorageUnavailable) as ei:
        IpfsStorage("http://ipfs:5001/api/v0", session=session).read_range(CID, 0, 10)
    assert ei.value.detail == "storage_short_read"
