"""tutordesk: billing and scheduling core for a single tutoring business."""

__version__ = "0.1.0"
