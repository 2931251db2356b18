"""
Tests for local CV storage.
"""

import pytest

from core.storage.local import LocalStorage


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(base_path=str(tmp_path))


class TestLocalStorage:

    def test_save_and_read(self, storage, tmp_path):
        path = storage.save("cvs", "jane.pdf", b"%PDF-1.7")

        assert path == "cvs/jane.pdf"
        assert (tmp_path / "cvs" / "jane.pdf").read_bytes() == b"%PDF-1.7"
        assert storage.read("cvs", "jane.pdf") == b"%PDF-1.7"

    def test_save_with_uuid(self, storage):
        path = storage.save_with_uuid("cvs", b"data", ".docx")

        bucket, key = path.split("/")
        assert bucket == "cvs"
        assert key.endswith(".docx")
        assert storage.exists("cvs", key)

    def test_uuid_keys_are_unique(self, storage):
        assert storage.save_with_uuid("cvs", b"a", ".pdf") != storage.save_with_uuid("cvs", b"b", ".pdf")

    def test_read_missing_file(self, storage):
        with pytest.raises(FileNotFoundError):
            storage.read("cvs", "missing.pdf")

    def test_delete(self, storage):
        storage.save("cvs", "old.pdf", b"x")

        assert storage.delete("cvs", "old.pdf") is True
        assert storage.delete("cvs", "old.pdf") is False
        assert not storage.exists("cvs", "old.pdf")

    @pytest.mark.parametrize("key", ["../../escape.pdf", "../../../etc/passwd"])
    def test_rejects_path_traversal(self, storage, key):
        with pytest.raises(ValueError, match="Invalid storage key"):
            storage.save("cvs", key, b"x")
