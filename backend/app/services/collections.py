"""
One CrudService per exposed collection, with its search and sort options.
"""

from app.models import Appointment, Lecture, Media, User
from app.services.crud_service import CrudOptions, CrudService

user_service = CrudService(
    User,
    "User",
    CrudOptions(
        searchable_fields=[
            "userName",
            "email",
            "bio.section.about",
            "bio.section.description",
            "bio.section.vision",
        ],
    ),
)

appointment_service = CrudService(
    Appointment,
    "Appointment",
    CrudOptions(searchable_fields=["name", "email", "organization", "message"]),
)

lecture_service = CrudService(
    Lecture,
    "Lecture",
    CrudOptions(searchable_fields=["title", "description", "content", "lectureType"]),
)

media_crud_service = CrudService(
    Media,
    "Media",
    CrudOptions(searchable_fields=["fileName", "altText", "slug"]),
)
