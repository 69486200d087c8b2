from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from sutra.services.users import ROLES


class SessionIn(BaseModel):
    idToken: str = Field(..., min_length=1)


class ProfilePatch(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=30)
    firstName: Optional[str] = Field(None, max_length=50)
    lastName: Optional[str] = Field(None, max_length=50)
    avatar: Optional[str] = None
    banner: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=100)
    website: Optional[str] = Field(None, max_length=200)
    interests: Optional[List[str]] = None
    skills: Optional[List[str]] = None
    notificationPreferences: Optional[Dict[str, bool]] = None


class RoleUpdate(BaseModel):
    role: str

    def normalized(self) -> Optional[str]:
        role = self.role.strip().lower()
        return role if role in ROLES else None


class ProgressIn(BaseModel):
    lessonId: str = Field(..., min_length=1)
    completed: bool = False
    current: bool = False
    timeSpent: float = Field(0, ge=0)


class RatingIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)


class NoteIn(BaseModel):
    lessonId: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=5000)


class ManualAccessIn(BaseModel):
    userId: str
    courseId: str
    courseType: Literal["course", "youtube"] = "course"
    paymentMethod: Optional[Literal["bank_transfer", "digital_wallet", "cash", "other", "manual_grant"]] = "manual_grant"
    paymentAmount: Optional[float] = Field(None, ge=0)


class EnrollmentRequestIn(BaseModel):
    paymentMethod: Optional[str] = None
    transactionId: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)
    paymentProof: Optional[str] = None


class EnrollmentDecision(BaseModel):
    status: Literal["approved", "rejected"]
    notes: Optional[str] = Field(None, max_length=1000)


class MediaItem(BaseModel):
    type: Literal["image", "video", "gif"]
    url: str = Field(..., min_length=1)
    thumbnail: Optional[str] = None
    key: Optional[str] = None
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None


class PostIn(BaseModel):
    caption: str = Field(..., max_length=2200)
    media: List[MediaItem] = []
    hashtags: List[str] = []
    category: Optional[str] = None
    location: Optional[str] = None
    isPublic: bool = True


class PostPatch(BaseModel):
    caption: Optional[str] = Field(None, max_length=2200)
    hashtags: Optional[List[str]] = None
    category: Optional[str] = None
    location: Optional[str] = None
    isPublic: Optional[bool] = None


class AdminPostPatch(BaseModel):
    isFeatured: Optional[bool] = None
    isPublic: Optional[bool] = None


class CommentIn(BaseModel):
    text: str


class UploadRequest(BaseModel):
    fileName: str = Field(..., min_length=1)
    fileType: str = Field(..., min_length=1)
    fileSize: int = Field(..., gt=0)
    folder: Optional[str] = None


class UploadSessionRef(BaseModel):
    uploadId: str = Field(..., min_length=1)


class UploadComplete(BaseModel):
    fileKey: str = Field(..., min_length=1)
    fileName: Optional[str] = None
    title: Optional[str] = None
    addToLibrary: bool = True


class VideoLibraryIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    key: str = Field(..., min_length=1)
    tags: List[str] = []


class VideoLibraryPatch(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    tags: Optional[List[str]] = None


class NotificationPatch(BaseModel):
    read: bool = True
