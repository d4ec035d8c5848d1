"""
Pytest configuration and fixtures for backend testing
"""

import pytest
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

# Set test environment before the application reads its settings
_storage_root = Path(tempfile.mkdtemp(prefix="scorm-merge-tests-"))
os.environ["ENVIRONMENT"] = "test"
os.environ["UPLOAD_DIR"] = str(_storage_root / "uploads")
os.environ["TEMP_DIR"] = str(_storage_root / "temp")
os.environ["DESCRIPTION_REQUEST_DELAY"] = "0"
os.environ["OPENAI_API_KEY"] = ""

from fastapi.testclient import TestClient

from app.main import app
from app.models.package import PackageRecord, Resource
from app.services.description_tasks import description_task_manager
from app.services.session_store import session_store

from scorm_fixtures import LESSON_HTML, SCORM12_MANIFEST, build_scorm_zip


@pytest.fixture
def make_package(tmp_path):
    """Factory building a SCORM 1.2 archive on disk"""
    def _make(
        name: str = "course.zip",
        title: str = "Test Course",
        description: str = "",
        identifier: str = "MANIFEST-1",
        href: str = "index.html",
        extra_files: Optional[Dict[str, Union[str, bytes]]] = None,
        manifest: Optional[str] = None,
    ) -> Path:
        files: Dict[str, Union[str, bytes]] = {
            "imsmanifest.xml": manifest if manifest is not None else SCORM12_MANIFEST.format(
                identifier=identifier, title=title, description=description, href=href
            ),
            href: LESSON_HTML,
            "scripts/app.js": "console.log('app');",
        }
        files.update(extra_files or {})
        return build_scorm_zip(tmp_path / name, files, directories=["scripts"])
    return _make


@pytest.fixture
def package_record(make_package):
    """Factory returning a PackageRecord backed by a real archive"""
    def _record(index: int = 1, title: str = "Test Course", **kwargs) -> PackageRecord:
        path = make_package(name=f"pkg{index}.zip", title=title, **kwargs)
        return PackageRecord(
            id=f"pkg{index}",
            title=title,
            version="1.2",
            identifier=f"MANIFEST-{index}",
            filename=f"pkg{index}.zip",
            path=str(path),
            resources=[
                Resource(
                    identifier="res_1",
                    type="webcontent",
                    href=kwargs.get("href", "index.html"),
                    files=[kwargs.get("href", "index.html"), "scripts/app.js"],
                )
            ],
        )
    return _record


@pytest.fixture(scope="session")
def test_client():
    """Create a test client for FastAPI application"""
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_state():
    """Drop sessions and description tasks between tests"""
    yield
    for session_id, _task in description_task_manager.store.items():
        description_task_manager.cleanup_task(session_id)
    for session_id in list(session_store._sessions):
        session_store.remove(session_id)


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )


# Helper functions for tests
def assert_response_success(response, expected_status=200):
    """Assert that response is successful"""
    assert response.status_code == expected_status, f"Expected {expected_status}, got {response.status_code}: {response.text}"


def assert_response_error(response, expected_status=400):
    """Assert that response is an error"""
    assert response.status_code == expected_status, f"Expected error {expected_status}, got {response.status_code}"
