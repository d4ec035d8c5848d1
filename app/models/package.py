"""
Pydantic Models for SCORM Package Data

These models describe the normalized view of an uploaded SCORM package
(manifest metadata, organization tree, resources) together with the
progress and task payloads pushed to clients during merge and description
generation.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

UNTITLED = "Untitled"
UNTITLED_PACKAGE = "Untitled SCORM Package"
UNTITLED_COURSE = "Untitled Course"
UNKNOWN_VERSION = "Unknown"
SENTINEL_TITLES = frozenset({UNTITLED, UNTITLED_PACKAGE})

TaskState = Literal["running", "completed", "cancelled", "failed", "not_found"]
ProgressType = Literal["started", "progress", "cancelled", "completed", "error"]


def generate_friendly_name(filename: str) -> str:
    """
    Convert an upload filename into a readable title.

    "my-course-module.zip" -> "My Course Module"
    "lesson_01_intro.zip"  -> "Lesson 01 Intro"
    "CourseModule1.zip"    -> "Course Module 1"
    """
    name = re.sub(r"\.[^/.]+$", "", filename or "")
    name = re.sub(r"[-_]", " ", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name)
    name = re.sub(r"([a-zA-Z])([0-9])", r"\1 \2", name)
    name = re.sub(r"([0-9])([a-zA-Z])", r"\1 \2", name)
    name = re.sub(r"\s+", " ", name).strip()
    name = re.sub(r"\b\w", lambda m: m.group(0).upper(), name)
    return name or UNTITLED_COURSE


class Resource(BaseModel):
    """Manifest resource with its constituent files"""
    identifier: str = Field(default="", description="Resource identifier")
    type: Optional[str] = Field(None, description="Resource type attribute")
    href: Optional[str] = Field(None, description="Primary entry-point path")
    files: List[str] = Field(default_factory=list, description="File paths")


class Item(BaseModel):
    """Organization item, possibly containing nested items"""
    identifier: Optional[str] = Field(None, description="Item identifier")
    title: str = Field(default="Untitled Item", description="Item title")
    identifierref: Optional[str] = Field(
        None, description="Identifier of the referenced resource"
    )
    items: List["Item"] = Field(default_factory=list, description="Child items")


class Organization(BaseModel):
    """Top-level organization tree from the manifest"""
    identifier: Optional[str] = Field(None, description="Organization identifier")
    title: str = Field(default="Untitled Organization", description="Organization title")
    items: List[Item] = Field(default_factory=list, description="Root items")


class PackageMetadata(BaseModel):
    """Normalized manifest data for one uploaded package"""
    title: str = Field(default=UNTITLED, description="Package title")
    description: str = Field(default="", description="Package description")
    version: str = Field(default=UNKNOWN_VERSION, description="SCORM schema version")
    identifier: str = Field(default="", description="Manifest identifier")
    organizations: List[Organization] = Field(default_factory=list)
    resources: List[Resource] = Field(default_factory=list)
    contentSample: str = Field(
        default="", description="Bounded text extract used for descriptions"
    )
    filename: Optional[str] = Field(None, description="Original upload filename")

    @property
    def display_title(self) -> str:
        """Title for menus and manifests; sentinel titles use the filename"""
        if self.title and self.title not in SENTINEL_TITLES:
            return self.title
        if self.filename:
            return generate_friendly_name(self.filename)
        return self.title or UNTITLED_COURSE

    @property
    def main_href(self) -> Optional[str]:
        """Entry point of the first resource that declares one"""
        for resource in self.resources:
            if resource.href:
                return resource.href
        return None


class PackageRecord(PackageMetadata):
    """Package as tracked by an upload session"""
    id: str = Field(..., description="Session-unique package id")
    path: Optional[str] = Field(
        None, description="Location of the backing archive on disk"
    )
    error: Optional[str] = Field(
        None, description="Parse failure; marks the package as excluded"
    )

    @property
    def is_valid(self) -> bool:
        return not self.error


class MergeProgress(BaseModel):
    """Coarse merge milestone"""
    step: str
    progress: float = Field(..., ge=0, le=100)


class ProgressEvent(BaseModel):
    """Description generation progress notification"""
    type: ProgressType
    message: str
    progress: int = Field(default=0, ge=0, le=100)
    current: Optional[int] = None
    total: Optional[int] = None


class DescriptionUpdate(BaseModel):
    """Per-package description result notification"""
    type: Literal["description_updated"] = "description_updated"
    packageId: str
    description: str
    progress: int = Field(default=0, ge=0, le=100)
    fallback: bool = False


class TaskStatus(BaseModel):
    """Snapshot of a session's description generation task"""
    status: TaskState
    id: Optional[str] = None
    progress: int = 0
    completed: int = 0
    total: int = 0
    startTime: Optional[datetime] = None
    duration: Optional[float] = Field(None, description="Seconds since start")
    cancelled: bool = False
    error: Optional[str] = None


# API Request/Response Models
class SessionRequest(BaseModel):
    """Request carrying only a session identifier"""
    sessionId: Optional[str] = Field(None, description="Upload session id")


class ReorderRequest(BaseModel):
    """Replace the package ordering for a session"""
    sessionId: Optional[str] = Field(None, description="Upload session id")
    packages: Optional[List[PackageRecord]] = Field(
        None, description="Packages in their new order"
    )


class UploadResponse(BaseModel):
    sessionId: str
    packages: List[PackageRecord]


class MergeResponse(BaseModel):
    downloadUrl: str


class DescriptionTaskResponse(BaseModel):
    success: bool = True
    taskId: str
    total: int


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Current environment")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Check timestamp")
    uptime: Optional[float] = Field(None, description="Uptime in seconds")
