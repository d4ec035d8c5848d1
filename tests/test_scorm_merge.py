"""
SCORM merge service tests
Package parsing, merged archive layout, manifest generation and the
finish handler injection.
"""

import dataclasses
import io
import zipfile

import pytest

from app.config import get_settings
from app.models.package import PackageRecord
from app.services.exceptions import MergeError, ParseError
from app.services.manifest_parser import parse_manifest
from app.services.menu_assets import (
    FINISH_HANDLER_MARKER,
    FINISH_HANDLER_SCRIPT,
    create_menu_html,
    create_menu_js,
    inject_finish_handler,
)
from app.services.scorm_merge import ScormMergeService

from scorm_fixtures import SCORM12_MANIFEST, build_scorm_zip, corrupt_member


@pytest.fixture
def service(tmp_path):
    settings = dataclasses.replace(get_settings(), temp_dir=tmp_path / "merged")
    return ScormMergeService(settings=settings)


def _read_zip(path):
    with zipfile.ZipFile(path) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


class TestValidateAndParsePackage:

    @pytest.mark.asyncio
    async def test_valid_package(self, service, make_package):
        path = make_package(title="Fire Safety", description="Stay safe")

        metadata = await service.validate_and_parse_package(path, "fire-safety.zip")

        assert metadata.title == "Fire Safety"
        assert metadata.description == "Stay safe"
        assert metadata.version == "1.2"
        assert metadata.filename == "fire-safety.zip"
        assert "Workplace Safety Essentials" in metadata.contentSample

    @pytest.mark.asyncio
    async def test_not_a_zip(self, service, tmp_path):
        path = tmp_path / "fake.zip"
        path.write_bytes(b"this is not an archive")

        with pytest.raises(ParseError) as exc_info:
            await service.validate_and_parse_package(path, "fake.zip")

        assert "Not a valid ZIP archive" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_manifest(self, service, tmp_path):
        path = build_scorm_zip(tmp_path / "bare.zip", {"index.html": "<p>hi</p>"})

        with pytest.raises(ParseError) as exc_info:
            await service.validate_and_parse_package(path, "bare.zip")

        assert str(exc_info.value) == "Invalid SCORM package: No imsmanifest.xml found at root level"

    @pytest.mark.asyncio
    async def test_nested_manifest_is_not_accepted(self, service, tmp_path):
        path = build_scorm_zip(
            tmp_path / "nested.zip", {"course/imsmanifest.xml": "<manifest/>"}
        )

        with pytest.raises(ParseError):
            await service.validate_and_parse_package(path, "nested.zip")

    @pytest.mark.asyncio
    async def test_missing_file(self, service, tmp_path):
        with pytest.raises(ParseError):
            await service.validate_and_parse_package(tmp_path / "gone.zip", "gone.zip")

    @pytest.mark.asyncio
    async def test_corrupt_manifest_member(self, service, tmp_path):
        manifest = SCORM12_MANIFEST.format(
            identifier="CRC", title="Corrupt", description="", href="index.html"
        )
        path = corrupt_member(
            tmp_path / "crc.zip",
            "imsmanifest.xml",
            {"imsmanifest.xml": manifest, "index.html": "<p>lesson</p>"},
        )

        with pytest.raises(ParseError) as exc_info:
            await service.validate_and_parse_package(path, "crc.zip")

        assert "Could not read imsmanifest.xml" in str(exc_info.value)


class TestMergePackages:

    @pytest.mark.asyncio
    async def test_archive_layout(self, service, package_record):
        packages = [package_record(1, "Zebra"), package_record(2, "Apple")]

        output = await service.merge_packages(packages)
        files = _read_zip(output)

        assert output.name.startswith("merged-scorm-")
        assert output.suffix == ".zip"
        for name in (
            "imsmanifest.xml",
            "menu/index.html",
            "menu/menu.js",
            "menu/style.css",
            "package_1/index.html",
            "package_1/scripts/app.js",
            "package_2/index.html",
            "package_2/scripts/app.js",
        ):
            assert name in files
        assert "package_1/imsmanifest.xml" not in files
        assert not any(name.endswith("/") for name in files)

    @pytest.mark.asyncio
    async def test_order_is_preserved(self, service, package_record):
        packages = [package_record(1, "Zebra"), package_record(2, "Apple")]

        output = await service.merge_packages(packages)
        manifest = _read_zip(output)["imsmanifest.xml"].decode("utf-8")
        items = parse_manifest(manifest).organizations[0].items

        assert [item.title for item in items] == ["Course Menu", "Zebra", "Apple"]
        assert [item.identifier for item in items] == ["menu_item", "item_1", "item_2"]
        assert manifest.index("Zebra") < manifest.index("Apple")

    @pytest.mark.asyncio
    async def test_finish_handler_injected_into_markup_only(self, service, package_record):
        output = await service.merge_packages([package_record(1, "Zebra")])
        files = _read_zip(output)

        page = files["package_1/index.html"].decode("utf-8")
        assert page.count(FINISH_HANDLER_MARKER) == 1
        assert page.index(FINISH_HANDLER_MARKER) < page.index("</head>")
        assert files["package_1/scripts/app.js"] == b"console.log('app');"

    @pytest.mark.asyncio
    async def test_progress_milestones(self, service, package_record):
        updates = []
        packages = [package_record(1, "Zebra"), package_record(2, "Apple")]

        await service.merge_packages(packages, updates.append)

        assert [u["progress"] for u in updates] == [5, 10, 15, 50, 90, 100]
        assert updates[2]["step"] == "Processing package: Zebra"
        assert updates[-1]["step"] == "Complete"

    @pytest.mark.asyncio
    async def test_empty_merge_has_menu_only(self, service):
        output = await service.merge_packages([])
        files = _read_zip(output)

        assert sorted(files) == [
            "imsmanifest.xml", "menu/index.html", "menu/menu.js", "menu/style.css"
        ]
        assert b"menu-empty" in files["menu/index.html"]

    @pytest.mark.asyncio
    async def test_missing_archive_raises_merge_error(self, service, tmp_path):
        pkg = PackageRecord(id="p1", title="Gone", path=str(tmp_path / "gone.zip"))

        with pytest.raises(MergeError):
            await service.merge_packages([pkg])

    @pytest.mark.asyncio
    async def test_record_without_path_raises_merge_error(self, service):
        with pytest.raises(MergeError):
            await service.merge_packages([PackageRecord(id="p1", title="Nowhere")])

    @pytest.mark.asyncio
    async def test_corrupt_member_raises_merge_error(self, service, tmp_path):
        manifest = SCORM12_MANIFEST.format(
            identifier="CRC", title="Damaged", description="", href="page.html"
        )
        path = corrupt_member(
            tmp_path / "damaged.zip",
            "page.html",
            {"imsmanifest.xml": manifest, "page.html": "<html><body>damaged lesson page</body></html>"},
        )
        pkg = PackageRecord(id="p1", title="Damaged", path=str(path))

        with pytest.raises(MergeError) as exc_info:
            await service.merge_packages([pkg])

        assert "Could not read package 'Damaged'" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_entries_cannot_escape_package_folder(self, service, package_record):
        pkg = package_record(1, "Zebra", extra_files={
            "../imsmanifest.xml": "<manifest/>",
            "lessons/../../escape.html": "<p>escape</p>",
            "./lessons/../extra.html": "<p>extra</p>",
        })

        output = await service.merge_packages([pkg])
        files = _read_zip(output)

        assert all(
            name == "imsmanifest.xml" or name.startswith(("menu/", "package_1/"))
            for name in files
        )
        assert not any(".." in name.split("/") for name in files)
        assert b"2004 3rd Edition" in files["imsmanifest.xml"]
        assert "package_1/extra.html" in files


class TestMergedManifest:

    def test_manifest_declares_scorm_2004(self, service, package_record):
        manifest = service.create_merged_manifest([package_record(1, "Zebra")])

        assert "<schemaversion>2004 3rd Edition</schemaversion>" in manifest
        assert 'xmlns="http://www.imsglobal.org/xsd/imscp_v1p1"' in manifest
        assert 'identifier="resource_pkg_1"' in manifest
        assert 'href="package_1/index.html"' in manifest

    def test_titles_are_escaped(self, service, package_record):
        manifest = service.create_merged_manifest([package_record(1, "Q&A <Basics>")])

        assert "Q&amp;A &lt;Basics&gt;" in manifest
        assert parse_manifest(manifest).organizations[0].items[1].title == "Q&A <Basics>"

    def test_file_hrefs_are_namespaced_and_deduplicated(self, service, package_record):
        manifest = service.create_merged_manifest([package_record(1, "Zebra", href="start.html")])

        resource = parse_manifest(manifest).resources[1]
        assert resource.href == "package_1/start.html"
        assert resource.files == ["package_1/start.html", "package_1/scripts/app.js"]

    def test_sentinel_title_uses_filename(self, service):
        pkg = PackageRecord(
            id="p1", title="Untitled SCORM Package", filename="fire-safety-basics.zip"
        )

        manifest = service.create_merged_manifest([pkg])

        assert "<title>Fire Safety Basics</title>" in manifest
        assert 'href="package_1/index.html"' in manifest


class TestMenuAssets:

    def test_menu_lists_packages(self, package_record):
        html = create_menu_html([package_record(1, "Zebra", description="Stripes")])

        assert "Zebra" in html
        assert "launchPackage(1)" in html
        assert "SCORM 1.2 &#8226; pkg1.zip" in html

    def test_menu_script_escapes_closing_tags(self):
        pkg = PackageRecord(id="p1", title="</script><b>", filename="x.zip")

        script = create_menu_js([pkg])

        assert "</script>" not in script
        assert '"mainFile": "index.html"' in script


class TestFinishHandlerInjection:

    def test_inserted_before_closing_head_case_insensitive(self):
        markup = "<HTML><HEAD><title>x</title></HEAD><BODY>y</BODY></HTML>"

        result = inject_finish_handler(markup)

        assert result.index(FINISH_HANDLER_MARKER) < result.index("</HEAD>")

    def test_falls_back_to_body(self):
        result = inject_finish_handler("<body><p>x</p></body>")

        assert result.index(FINISH_HANDLER_MARKER) < result.index("</body>")

    def test_appended_without_closing_tags(self):
        result = inject_finish_handler("<p>fragment</p>")

        assert result.startswith("<p>fragment</p>")
        assert FINISH_HANDLER_MARKER in result

    def test_injection_is_idempotent(self):
        once = inject_finish_handler("<html><head></head></html>")

        assert inject_finish_handler(once) == once

    def test_undecodable_markup_is_left_untouched(self, service):
        content = b"\xff\xfe<html></html>"

        assert service.inject_finish_handler(content, "bad.html") == content

    def test_non_ascii_text_before_closing_head(self):
        head = "<html><head><title>İstanbul</title>"
        tail = "</head><body>x</body></html>"

        result = inject_finish_handler(head + tail)

        assert result == head + FINISH_HANDLER_SCRIPT + "\n" + tail
