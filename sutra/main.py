from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sutra.core.config import settings
from sutra.core.errors import install_exception_handlers
from sutra.core.logging import setup_logging
from sutra.middleware.audit import audit_middleware
from sutra.routers import (
    admin_courses,
    admin_users,
    analytics,
    auth,
    courses,
    health,
    notifications,
    posts,
    search,
    uploads,
    users,
    video_library,
    youtube_courses,
)


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    app = FastAPI(title="Sutra Learning API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(audit_middleware)
    install_exception_handlers(app)

    # Public/health
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(auth.router, tags=["auth"])

    # Learner API
    app.include_router(users.router, prefix="/api/users", tags=["users"])
    app.include_router(courses.router, prefix="/api/courses", tags=["courses"])
    app.include_router(youtube_courses.router, prefix="/api/youtube-courses", tags=["youtube-courses"])
    app.include_router(posts.router, prefix="/api/posts", tags=["posts"])
    app.include_router(posts.hashtags_router, prefix="/api/hashtags", tags=["posts"])
    app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
    app.include_router(uploads.router, tags=["uploads"])
    app.include_router(search.router, prefix="/api/search", tags=["search"])
    app.include_router(analytics.public_router, prefix="/api/stats", tags=["stats"])

    # Admin routers
    app.include_router(admin_users.router, prefix="/api/admin/users", tags=["admin-users"])
    app.include_router(admin_courses.router, prefix="/api/admin/courses", tags=["admin-courses"])
    app.include_router(courses.admin_router, prefix="/api/admin", tags=["admin-courses"])
    app.include_router(youtube_courses.admin_router, prefix="/api/admin/youtube-courses", tags=["admin-youtube"])
    app.include_router(posts.admin_router, prefix="/api/admin/posts", tags=["admin-posts"])
    app.include_router(video_library.router, prefix="/api/admin/video-library", tags=["video-library"])
    app.include_router(analytics.router, prefix="/api/admin/analytics", tags=["analytics"])

    return app


app = create_app()
