"""
SCORM Merge Service
Validates uploaded SCORM packages and merges several of them into a single
package that opens on a generated course menu.
"""

import logging
import time
import uuid
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from app.config import Settings, get_settings
from app.models.package import (
    UNTITLED_PACKAGE,
    MergeProgress,
    PackageMetadata,
    PackageRecord,
)
from app.services.archive import (
    ARCHIVE_READ_ERRORS,
    ArchiveWriter,
    normalize_entry_name,
    open_archive,
    read_archive_bytes,
    write_bytes,
)
from app.services.content_sampler import sample_content
from app.services.exceptions import MergeError, ParseError
from app.services.manifest_parser import parse_manifest
from app.services.menu_assets import (
    MENU_HTML,
    MENU_JS,
    MENU_CSS,
    create_menu_files,
    entry_point,
    escape_xml,
    inject_finish_handler,
    package_folder,
)
from app.utils.events import EventSink, emit
from app.utils.feature_flags import is_feature_enabled

logger = logging.getLogger(__name__)

MANIFEST_NAME = "imsmanifest.xml"
MERGED_TITLE = "Merged SCORM Package"
MENU_RESOURCE_ID = "menu_resource"


class ScormMergeService:
    """Service for parsing SCORM packages and merging them"""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    async def validate_and_parse_package(
        self, archive_path, filename: Optional[str] = None
    ) -> PackageMetadata:
        """
        Read an uploaded archive and return its normalized metadata

        Args:
            archive_path: Location of the uploaded ZIP archive
            filename: Original upload filename, used for display titles

        Returns:
            PackageMetadata for the package

        Raises:
            ParseError: If the archive or its manifest cannot be read
        """
        logger.info(f"Parsing SCORM package: {filename or archive_path}")
        try:
            archive_bytes = await read_archive_bytes(archive_path)
        except OSError as e:
            raise ParseError(f"Could not read archive: {e}") from e

        try:
            reader = open_archive(archive_bytes)
        except zipfile.BadZipFile as e:
            raise ParseError(f"Not a valid ZIP archive: {e}") from e

        with reader:
            if not reader.has(MANIFEST_NAME):
                raise ParseError("No imsmanifest.xml found at root level")

            try:
                manifest_xml = reader.read_text(MANIFEST_NAME)
            except ARCHIVE_READ_ERRORS as e:
                raise ParseError(f"Could not read {MANIFEST_NAME}: {e}") from e
            metadata = parse_manifest(manifest_xml)

            if is_feature_enabled("content_sampling"):
                metadata.contentSample = sample_content(
                    reader,
                    self.settings.description_max_content_length,
                    entry_points=[r.href for r in metadata.resources if r.href],
                )

        if not metadata.title.strip():
            metadata.title = UNTITLED_PACKAGE
        metadata.filename = filename

        logger.info(
            f"✓ Parsed package '{metadata.title}' (SCORM {metadata.version}, "
            f"{len(metadata.resources)} resources)"
        )
        return metadata

    async def merge_packages(
        self,
        packages: Sequence[PackageRecord],
        on_progress: Optional[EventSink] = None,
    ) -> Path:
        """
        Merge packages, in the given order, into one SCORM package

        Args:
            packages: Packages in their final order
            on_progress: Optional sink for {step, progress} milestones

        Returns:
            Path of the written merged archive

        Raises:
            MergeError: If a package archive cannot be read
        """
        logger.info(f"Merging {len(packages)} SCORM packages")
        writer = ArchiveWriter()

        writer.add(MANIFEST_NAME, self.create_merged_manifest(packages))
        await self._report(on_progress, "Creating merged manifest", 5)

        writer.add_all(create_menu_files(packages))
        await self._report(on_progress, "Creating course menu", 10)

        inject = is_feature_enabled("finish_handler")
        for index, pkg in enumerate(packages):
            await self._report(
                on_progress,
                f"Processing package: {pkg.display_title}",
                15 + (index / len(packages)) * 70,
            )
            self._copy_package(writer, index, pkg, await self._load(pkg), inject)

        await self._report(on_progress, "Generating final package", 90)

        output_path = self._output_path()
        try:
            await write_bytes(output_path, writer.to_bytes())
        except OSError as e:
            logger.error(f"Failed to write merged package: {e}", exc_info=True)
            raise MergeError(f"Could not write merged package: {e}") from e

        await self._report(on_progress, "Complete", 100)
        logger.info(f"✓ Merged package written to {output_path}")
        return output_path

    async def _report(
        self, sink: Optional[EventSink], step: str, progress: float
    ) -> None:
        await emit(sink, MergeProgress(step=step, progress=progress).model_dump())

    async def _load(self, pkg: PackageRecord) -> bytes:
        if not pkg.path:
            raise MergeError(f"Package '{pkg.display_title}' has no backing archive")
        try:
            return await read_archive_bytes(pkg.path)
        except OSError as e:
            logger.error(f"Failed to read package {pkg.path}: {e}")
            raise MergeError(
                f"Could not read package '{pkg.display_title}': {e}"
            ) from e

    def _copy_package(
        self,
        writer: ArchiveWriter,
        index: int,
        pkg: PackageRecord,
        archive_bytes: bytes,
        inject: bool,
    ) -> None:
        folder = package_folder(index)
        try:
            reader = open_archive(archive_bytes)
        except zipfile.BadZipFile as e:
            raise MergeError(
                f"Could not read package '{pkg.display_title}': {e}"
            ) from e

        with reader:
            for entry in reader.entries:
                if entry.is_directory:
                    continue
                name = normalize_entry_name(entry.name)
                if name is None:
                    logger.warning(
                        f"Skipping entry outside the package root in {pkg.display_title}: {entry.name}"
                    )
                    continue
                if name == MANIFEST_NAME:
                    continue
                try:
                    content = entry.read()
                except ARCHIVE_READ_ERRORS as e:
                    raise MergeError(
                        f"Could not read package '{pkg.display_title}': {e}"
                    ) from e
                if inject and entry.is_markup:
                    content = self.inject_finish_handler(content, name)
                writer.add(name, content, prefix=folder)

    def inject_finish_handler(self, content: bytes, name: str = "") -> bytes:
        """Return markup with the finish handler, or the original bytes"""
        try:
            return inject_finish_handler(content.decode("utf-8")).encode("utf-8")
        except Exception as e:
            logger.warning(f"Could not inject finish handler into {name}: {e}")
            return content

    def _output_path(self) -> Path:
        temp_dir = self.settings.temp_dir
        temp_dir.mkdir(parents=True, exist_ok=True)
        stamp = int(time.time() * 1000)
        return temp_dir / f"merged-scorm-{stamp}-{uuid.uuid4().hex[:8]}.zip"

    def create_merged_manifest(self, packages: Sequence[PackageMetadata]) -> str:
        """Build the SCORM 2004 3rd Edition manifest for the merged package.

        The merged manifest always declares the 2004 profile regardless of
        the input packages' versions.
        """
        manifest_id = str(uuid.uuid4())
        organization_id = f"org_{manifest_id}"

        items_xml = f"""
      <item identifier="menu_item" identifierref="{MENU_RESOURCE_ID}">
        <title>Course Menu</title>
      </item>"""
        resources_xml = f"""
    <resource identifier="{MENU_RESOURCE_ID}" type="webcontent" adlcp:scormType="sco" href="{MENU_HTML}">
      <file href="{MENU_HTML}"/>
      <file href="{MENU_JS}"/>
      <file href="{MENU_CSS}"/>
    </resource>"""

        for index, pkg in enumerate(packages):
            number = index + 1
            resource_id = f"resource_pkg_{number}"
            items_xml += f"""
      <item identifier="item_{number}" identifierref="{resource_id}">
        <title>{escape_xml(pkg.display_title)}</title>
      </item>"""
            resources_xml += self._package_resource_xml(index, resource_id, pkg)

        return f"""<?xml version="1.0" encoding="UTF-8"?>
<manifest identifier="{manifest_id}" version="1.3"
          xmlns="http://www.imsglobal.org/xsd/imscp_v1p1"
          xmlns:adlcp="http://www.adlnet.org/xsd/adlcp_v1p3"
          xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
          xsi:schemaLocation="http://www.imsglobal.org/xsd/imscp_v1p1 imscp_v1p1.xsd
                              http://www.adlnet.org/xsd/adlcp_v1p3 adlcp_v1p3.xsd">
  <metadata>
    <schema>ADL SCORM</schema>
    <schemaversion>2004 3rd Edition</schemaversion>
    <lom:lom xmlns:lom="http://ltsc.ieee.org/xsd/LOM">
      <lom:general>
        <lom:title>
          <lom:string language="en">{MERGED_TITLE}</lom:string>
        </lom:title>
      </lom:general>
    </lom:lom>
  </metadata>
  <organizations default="{organization_id}">
    <organization identifier="{organization_id}">
      <title>{MERGED_TITLE}</title>{items_xml}
    </organization>
  </organizations>
  <resources>{resources_xml}
  </resources>
</manifest>
"""

    def _package_resource_xml(
        self, index: int, resource_id: str, pkg: PackageMetadata
    ) -> str:
        folder = package_folder(index)
        main_href = f"{folder}/{entry_point(pkg)}"

        hrefs: List[str] = [main_href]
        for resource in pkg.resources:
            for file_href in resource.files:
                href = f"{folder}/{file_href}"
                if href not in hrefs:
                    hrefs.append(href)

        files_xml = "".join(
            f'\n      <file href="{escape_xml(href)}"/>' for href in hrefs
        )
        return f"""
    <resource identifier="{resource_id}" type="webcontent" adlcp:scormType="sco" href="{escape_xml(main_href)}">{files_xml}
    </resource>"""

    def create_menu_files(self, packages: Sequence[PackageMetadata]) -> Dict[str, str]:
        return create_menu_files(packages)


# Merge service instance
scorm_merge_service = ScormMergeService()
