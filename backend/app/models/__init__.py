"""
Lyceum Backend — Document Models
==================================

Every collection the API exposes. DOCUMENT_MODELS is the list handed to
init_beanie at startup.
"""

from app.models.appointment import Appointment
from app.models.lecture import Lecture
from app.models.media import Media
from app.models.user import User

DOCUMENT_MODELS = [User, Appointment, Lecture, Media]

__all__ = ["Appointment", "Lecture", "Media", "User", "DOCUMENT_MODELS"]
