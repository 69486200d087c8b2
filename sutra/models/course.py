from typing import List, Literal, Optional

from pydantic import BaseModel, Field, constr

Level = Literal["beginner", "intermediate", "advanced"]
Tag = constr(strip_whitespace=True, max_length=30)
Line = constr(strip_whitespace=True, max_length=200)


class Asset(BaseModel):
    key: str
    url: str
    size: int = Field(0, ge=0)
    type: Literal["image", "video"]
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    fileName: Optional[str] = None
    originalFileName: Optional[str] = None


class VideoSource(BaseModel):
    type: Literal["uploaded", "library", "youtube"] = "uploaded"
    videoLibraryId: Optional[str] = None
    video: Optional[Asset] = None
    # youtube sources
    videoId: Optional[str] = None
    url: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    title: Optional[str] = None
    channel: Optional[str] = None
    duration: Optional[float] = None


class ResourceIn(BaseModel):
    id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    url: str = Field(..., min_length=1)
    type: Literal["pdf", "document", "link", "video", "youtube"] = "pdf"
    description: Optional[str] = Field(None, max_length=500)


class ResourcePatch(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    url: Optional[str] = None
    type: Optional[Literal["pdf", "document", "link", "video", "youtube"]] = None
    description: Optional[str] = Field(None, max_length=500)


class SubLessonIn(BaseModel):
    id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    content: Optional[str] = None
    videoSource: Optional[VideoSource] = None
    duration: float = Field(0, ge=0, le=10000)
    isPreview: bool = False
    resources: List[ResourceIn] = []
    order: int = 0


class LessonIn(SubLessonIn):
    subLessons: List[SubLessonIn] = []


class LessonPatch(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    content: Optional[str] = None
    videoSource: Optional[VideoSource] = None
    duration: Optional[float] = Field(None, ge=0, le=10000)
    isPreview: Optional[bool] = None


class ChapterIn(BaseModel):
    id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    order: int = 0
    lessons: List[LessonIn] = []


class ModuleIn(BaseModel):
    id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    thumbnailUrl: Optional[str] = None
    order: int = 0
    chapters: List[ChapterIn] = []


class SectionPatch(BaseModel):
    """Patch for modules and chapters."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    thumbnailUrl: Optional[str] = None


class ReorderIn(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class CourseIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = None
    description: str = ""
    shortDescription: str = Field("", max_length=200)
    price: float = Field(0, ge=0)
    isFree: bool = False
    level: Level = "beginner"
    category: Optional[str] = Field(None, max_length=50)
    tags: List[Tag] = []
    thumbnail: Optional[Asset] = None
    previewVideo: Optional[Asset] = None
    modules: List[ModuleIn] = []
    requirements: List[Line] = []
    learningOutcomes: List[Line] = []
    isPublished: bool = False
    isFeatured: bool = False


class CoursePatch(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = None
    description: Optional[str] = None
    shortDescription: Optional[str] = Field(None, max_length=200)
    price: Optional[float] = Field(None, ge=0)
    isFree: Optional[bool] = None
    level: Optional[Level] = None
    category: Optional[str] = Field(None, max_length=50)
    tags: Optional[List[Tag]] = None
    thumbnail: Optional[Asset] = None
    previewVideo: Optional[Asset] = None
    requirements: Optional[List[Line]] = None
    learningOutcomes: Optional[List[Line]] = None


class PublishIn(BaseModel):
    isPublished: Optional[bool] = None
    isFeatured: Optional[bool] = None


class YouTubeCourseIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = None
    description: str = ""
    shortDescription: str = Field("", max_length=200)
    price: float = Field(0, ge=0)
    isFree: bool = False
    level: Level = "beginner"
    category: Optional[str] = Field(None, max_length=50)
    tags: List[Tag] = []
    thumbnail: str = ""
    previewVideo: Optional[VideoSource] = None
    modules: List[ModuleIn] = []
    requirements: List[Line] = []
    learningOutcomes: List[Line] = []
    isPublished: bool = False
    isFeatured: bool = False
    manualEnrollmentEnabled: bool = False
