"""vidstage - staged processing pipeline for uploaded videos.

Drives an uploaded video through transcription, thumbnail extraction,
multi-quality encoding, content moderation, search indexing and AI
highlight extraction until it is published or quarantined.
"""

__version__ = "0.1.0"
