"""SCORM manifest (imsmanifest.xml) parser.

Turns the manifest of a SCORM 1.2 / 2004 package into a ``PackageMetadata``
record: title, description, schema version, identifier, the organization
tree and the resource list. Element names are matched by local name, so
the IMS namespace variants used by different SCORM versions all parse the
same way. Missing optional sections produce empty lists, never errors.
"""

from __future__ import annotations

import logging
import uuid
import xml.etree.ElementTree as ET
from typing import Iterable, List, Optional, Sequence, Tuple

from app.models.package import (
    UNKNOWN_VERSION,
    UNTITLED,
    UNTITLED_PACKAGE,
    Item,
    Organization,
    PackageMetadata,
    Resource,
)
from app.services.exceptions import ParseError

logger = logging.getLogger(__name__)

MAX_ITEM_DEPTH = 32

# LOM dialects in priority order; first non-empty value wins
TITLE_PATHS: Sequence[Tuple[str, ...]] = (
    ("lom", "general", "title", "string"),
    ("lom", "general", "title", "langstring"),
)
DESCRIPTION_PATHS: Sequence[Tuple[str, ...]] = (
    ("lom", "general", "description", "string"),
    ("lom", "general", "description", "langstring"),
)


def _local(tag: str) -> str:
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.rsplit("}", 1)[1]
    if ":" in tag:
        return tag.rsplit(":", 1)[1]
    return tag


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _text(element: Optional[ET.Element]) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def _probe(metadata: ET.Element, paths: Iterable[Tuple[str, ...]]) -> str:
    """Walk each candidate path and return the first non-empty text"""
    for path in paths:
        nodes = [metadata]
        for name in path:
            nodes = [found for node in nodes for found in _children(node, name)]
            if not nodes:
                break
        for node in nodes:
            value = _text(node)
            if value:
                return value
    return ""


def _attribute(element: ET.Element, name: str) -> Optional[str]:
    """Attribute lookup ignoring namespace prefixes (adlcp:scormtype etc.)"""
    if name in element.attrib:
        return element.attrib[name]
    for key, value in element.attrib.items():
        if _local(key) == name:
            return value
    return None


def parse_manifest(xml_content: str) -> PackageMetadata:
    """Parse imsmanifest.xml content and return normalized metadata.

    Raises:
        ParseError: If the markup is not well-formed XML
    """
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        raise ParseError(f"Malformed manifest markup: {e}") from e

    metadata_el = _child(root, "metadata")
    if metadata_el is not None:
        title = _probe(metadata_el, TITLE_PATHS) or UNTITLED
        description = _probe(metadata_el, DESCRIPTION_PATHS)
        version = _text(_child(metadata_el, "schemaversion")) or UNKNOWN_VERSION
    else:
        title = UNTITLED_PACKAGE
        description = ""
        version = UNKNOWN_VERSION

    identifier = (root.get("identifier") or "").strip()
    if not identifier:
        identifier = str(uuid.uuid4())

    return PackageMetadata(
        title=title,
        description=description,
        version=version,
        identifier=identifier,
        organizations=extract_organizations(root),
        resources=extract_resources(root),
    )


def extract_organizations(root: ET.Element) -> List[Organization]:
    organizations_el = _child(root, "organizations")
    if organizations_el is None:
        return []

    organizations = []
    for org_el in _children(organizations_el, "organization"):
        organizations.append(
            Organization(
                identifier=org_el.get("identifier"),
                title=_text(_child(org_el, "title")) or "Untitled Organization",
                items=extract_items(_children(org_el, "item")),
            )
        )
    return organizations


def extract_items(item_elements: List[ET.Element], depth: int = 0) -> List[Item]:
    if depth >= MAX_ITEM_DEPTH:
        logger.warning(
            "Organization tree deeper than %d levels; truncating", MAX_ITEM_DEPTH
        )
        return []

    return [
        Item(
            identifier=item_el.get("identifier"),
            title=_text(_child(item_el, "title")) or "Untitled Item",
            identifierref=item_el.get("identifierref"),
            items=extract_items(_children(item_el, "item"), depth + 1),
        )
        for item_el in item_elements
    ]


def extract_resources(root: ET.Element) -> List[Resource]:
    resources_el = _child(root, "resources")
    if resources_el is None:
        return []

    resources = []
    for res_el in _children(resources_el, "resource"):
        files = [
            href for href in (
                file_el.get("href") for file_el in _children(res_el, "file")
            )
            if href
        ]
        resources.append(
            Resource(
                identifier=res_el.get("identifier") or "",
                type=_attribute(res_el, "type"),
                href=res_el.get("href"),
                files=files,
            )
        )
    return resources
