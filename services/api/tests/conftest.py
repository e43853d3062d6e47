"""
Shared fixtures: every test gets its own database, JSON dir and blob dir
under tmp_path.
"""
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adapters.json import JsonAdapter
from adapters.sqlite import SqliteAdapter
from core.annotations import AnnotationStore
from core.blob_store import BlobStore
from core.promotion import PromotionBridge, StorageTaskService
from core.versions import VersionStore

PDF_A = b"%PDF-1.4\n% version A\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF\n"
PDF_B = b"%PDF-1.4\n% version B\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF\n"


@pytest.fixture
def sqlite_storage(tmp_path):
    return SqliteAdapter.from_url(f"sqlite:///{tmp_path / 'vault.db'}")


@pytest.fixture(params=["sqlite", "json"])
def storage(request, tmp_path):
    """Runs the test once per local backend."""
    if request.param == "sqlite":
        return SqliteAdapter.from_url(f"sqlite:///{tmp_path / 'vault.db'}")
    return JsonAdapter(data_dir=str(tmp_path / "json"))


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(str(tmp_path / "blobs"))


@pytest.fixture
def versions(storage, blobs):
    return VersionStore(storage, blobs)


@pytest.fixture
def annotations(storage):
    return AnnotationStore(storage, cache_ttl=5)


@pytest.fixture
def tasks(storage):
    return StorageTaskService(storage)


@pytest.fixture
def promotion(annotations, tasks):
    return PromotionBridge(annotations, tasks)


@pytest.fixture
def first_version(versions):
    """A registered file with its version 1."""
    record, v1 = versions.register_file("drawing.pdf", PDF_A, uploader_id=7, project_id=3)
    return v1


def rect(page=1, x=10, y=10, width=50, height=20):
    return {"x": x, "y": y, "width": width, "height": height, "pageNumber": page}


def annotation_data(version_id, **overrides):
    data = {
        "pdfVersionId": version_id,
        "projectId": 3,
        "rect": rect(),
        "comment": "check tolerance",
        "createdById": 7,
    }
    data.update(overrides)
    return data
